import secrets
import time
import uuid

def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def gen_payment_reference() -> str:
    # AMV_<epoch ms>_<7 random chars>, unique per payment attempt
    return f"AMV_{int(time.time() * 1000)}_{secrets.token_hex(4)[:7].upper()}"
