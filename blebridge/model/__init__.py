from .reading import Reading, normalize_address
from .advertisement import (
    PropertyKind,
    VendorPayload,
    classify_property,
    decode_changes,
    decode_vendor_payload,
)

__all__ = ["Reading",
           "normalize_address",
           "PropertyKind",
           "VendorPayload",
           "classify_property",
           "decode_changes",
           "decode_vendor_payload"]
