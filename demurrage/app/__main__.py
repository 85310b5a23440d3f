from demurrage.app import app, PORT, token, wallet
from demurrage.util.log import log_info, short


if __name__ == "__main__":
    log_info(f"[NODE] {token.symbol()} token node serving on port {PORT} as {short(wallet.address)}")
    app.run(port=PORT)
