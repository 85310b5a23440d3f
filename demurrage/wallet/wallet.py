import hashlib
import json
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    encode_dss_signature,
    decode_dss_signature
)
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.exceptions import InvalidSignature


class Wallet:
    """
    Key pair of a token holder. The address is what the ledger knows the holder by.
    """
    def __init__(self, token=None, private_key=None):
        self.token = token
        if private_key:
            self.private_key = private_key
        else:
            self.private_key = ec.generate_private_key(ec.SECP256K1(), default_backend())
        self.public_key_obj = self.private_key.public_key()
        self.public_key = self.public_key_hex()
        self.address = Wallet.derive_address(self.public_key)

    def balance(self, now):
        """
        Spendable balance on the attached token at `now`.
        """
        if not self.token:
            return 0
        return self.token.balance_of(self.address, now)

    def sign(self, data):
        return decode_dss_signature(
            self.private_key.sign(
                json.dumps(data, sort_keys=True).encode('utf-8'),
                ec.ECDSA(hashes.SHA256())
            ))

    def public_key_hex(self):
        bytes_uncompressed = self.public_key_obj.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint
        )
        return bytes_uncompressed.hex()

    def private_key_hex(self):
        return self.private_key.private_numbers().private_value.to_bytes(32, 'big').hex()

    @staticmethod
    def derive_address(public_key_hex):
        # 0x + first 40 hex chars of the sha256 of the uncompressed public key
        digest = hashlib.sha256(bytes.fromhex(public_key_hex)).hexdigest()
        return "0x" + digest[:40]

    @classmethod
    def from_private_key(cls, private_key_hex, token=None):
        errors = []
        private_key = None
        key_str = private_key_hex if isinstance(private_key_hex, str) else private_key_hex.decode()
        # Try PEM first
        try:
            private_key = serialization.load_pem_private_key(
                key_str.encode("utf-8"),
                password=None,
                backend=default_backend()
            )
        except (ValueError, TypeError) as exc:
            errors.append(exc)

        if private_key is None:
            try:
                int_key = int(key_str.strip(), 16)
                private_key = ec.derive_private_key(int_key, ec.SECP256K1(), default_backend())
            except (ValueError, TypeError) as exc:
                errors.append(exc)

        if private_key is None:
            last_error = errors[-1] if errors else "unknown error"
            raise Exception(f"Invalid private key: {last_error}")
        return cls(token=token, private_key=private_key)

    @staticmethod
    def verify(public_key, data, signature):
        # public_key is hex string (uncompressed)
        try:
            public_bytes = bytes.fromhex(public_key)
            deserialized_public_key = ec.EllipticCurvePublicKey.from_encoded_point(
                ec.SECP256K1(),
                public_bytes
            )
            (r, s) = signature
            encoded_signature = encode_dss_signature(r, s)
        except (ValueError, TypeError):
            return False

        try:
            deserialized_public_key.verify(
                encoded_signature,
                json.dumps(data, sort_keys=True).encode('utf-8'),
                ec.ECDSA(hashes.SHA256())
            )

            return True
        except InvalidSignature:
            return False

    def to_json(self):
        """
        Public part of the wallet.
        """
        return {
            "address": self.address,
            "public_key": self.public_key,
        }
