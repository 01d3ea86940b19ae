import uuid
from typing import Callable

# every entity id is "<prefix>_<32 hex>"; the prefix tells rows apart in logs
ID_PREFIXES = {
    "usr": "user",
    "key": "api key",
    "cat": "category",
    "lst": "listing",
    "img": "listing image",
    "rnw": "listing renewal",
    "ofr": "offer",
    "rpt": "report",
    "mlg": "moderation log",
    "ntf": "notification",
    "obx": "outbox event",
    "idm": "idempotency key",
    "fav": "favorite",
}


def gen_id(prefix: str) -> str:
    if prefix not in ID_PREFIXES:
        raise ValueError(f"unknown id prefix: {prefix}")
    return f"{prefix}_{uuid.uuid4().hex}"


def id_factory(prefix: str) -> Callable[[], str]:
    """Column default producing ids with ``prefix``."""
    gen_id(prefix)
    return lambda: gen_id(prefix)
