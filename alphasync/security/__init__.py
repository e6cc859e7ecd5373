from alphasync.security.codec import (
    CATEGORY_TAGS,
    MAX_SEQUENCE,
    SecurityCategory,
    SecurityKey,
    decode,
    encode,
)

__all__ = [
    "CATEGORY_TAGS",
    "MAX_SEQUENCE",
    "SecurityCategory",
    "SecurityKey",
    "decode",
    "encode",
]
