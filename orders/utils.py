import secrets
import string
import time

ALNUM = string.ascii_uppercase + string.digits
BASE36 = string.digits + string.ascii_uppercase


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = BASE36[r] + out
    return out or "0"


def generate_order_number(prefix="MPR"):
    # e.g. MPR-LZ1K9Q2A-7QXF
    ts = _base36(int(time.time() * 1000))
    rand = "".join(secrets.choice(ALNUM) for _ in range(4))
    return f"{prefix}-{ts}-{rand}"


def proof_token():
    return secrets.token_hex(12)
