import secrets
import time


def new_billing_session_id() -> str:
    """bill_<epoch-ms>_<random>, correlates one billing attempt across redirects."""
    return f"bill_{int(time.time() * 1000)}_{secrets.token_hex(6)}"
