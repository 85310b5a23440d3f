"""
Named ledger failures. Every error aborts the whole operation it was raised in.
"""


class TokenError(Exception):
    message = "Token operation failed"

    def __init__(self, message=None):
        super().__init__(message or self.message)


class NotOwner(TokenError):
    message = "Ownable: caller is not the owner"


class InvalidOwner(TokenError):
    message = "Ownable: new owner is the zero address"


class NotMinter(TokenError):
    message = "ERC20WithFees: only minter can call this function"


class InvalidMiner(TokenError):
    message = "ERC20WithFees: minter address cannot be zero"


class InvalidFeeCollector(TokenError):
    message = "ERC20WithFees: collection address cannot be zero"


class InvalidOracle(TokenError):
    message = "ERC20WithFees: oracle address cannot be zero"


class MaxFeeExceeded(TokenError):
    message = "ERC20WithFees: fee cannot be more than max fee"


class FeeChangeTooSoon(TokenError):
    message = "ERC20WithFees: fee change delay not passed"


class FeeIncreaseNotAllowed(TokenError):
    message = "ERC20WithFees: fee can only be reduced"


class MintingLimitExceeded(TokenError):
    message = "ERC20WithFees: minting limit exceeded"


class AllowanceBelowZero(TokenError):
    message = "ERC20: decreased allowance below zero"


class InsufficientBalance(TokenError):
    message = "ERC20: transfer amount exceeds balance"


class InsufficientAllowance(TokenError):
    message = "ERC20: insufficient allowance"


class InvalidAmount(TokenError):
    message = "ERC20: transfer amount must be greater than 0"


class InvalidRecipient(TokenError):
    message = "ERC20: transfer to the zero address"


class AlreadyInitialized(TokenError):
    message = "Initializable: contract is already initialized"


class InvalidImplementation(TokenError):
    message = "Proxy: new implementation is not a token implementation"


class IncompatibleStorageLayout(TokenError):
    message = "Proxy: new implementation does not extend the storage layout"
