from typing import Optional


def mask_pan(pan: Optional[str]) -> str:
    """ABCDE1234F -> ABC*****F"""
    if pan is None or len(pan) < 4:
        return "INVALID_PAN"
    return pan[:3] + "*****" + pan[-1]


def mask_aadhaar(aadhaar: Optional[str]) -> str:
    """123456789012 -> ********9012"""
    if aadhaar is None or len(aadhaar) < 4:
        return "INVALID_AADHAAR"
    return "********" + aadhaar[-4:]
