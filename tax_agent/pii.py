"""
PII scrubbing helpers.

Anything that might carry a taxpayer identifier (provider error text,
validation messages, log lines) goes through these before it leaves the
process.
"""

import re

# XXX-XX-XXXX
SSN_FORMATTED = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
# XX-XXXXXXX
EIN_FORMATTED = re.compile(r"\b\d{2}-\d{7}\b")
# 9 digits not embedded in a longer digit run
NINE_DIGITS = re.compile(r"(?<!\d)\d{9}(?!\d)")


def scrub_tins(text: str) -> str:
    """
    Replace anything that looks like a TIN with a masked version showing
    only the last 4 digits. Safe to call on any string.

        "412-78-9654" -> "***-**-9654"
        "27-1234567"  -> "**-***4567"
        "412789654"   -> "*****9654"
    """
    if not text:
        return text
    text = SSN_FORMATTED.sub(lambda m: f"***-**-{m.group(0)[-4:]}", text)
    text = EIN_FORMATTED.sub(lambda m: f"**-***{m.group(0)[-4:]}", text)
    return NINE_DIGITS.sub(lambda m: f"*****{m.group(0)[-4:]}", text)


def mask_tin(tin: str) -> str:
    """Mask a TIN (formatted or raw) down to its last 4 characters."""
    raw = (tin or "").replace("-", "")
    return f"***{raw[-4:]}"


def normalize_tin(tin: str) -> str:
    """Strip punctuation from TIN, return digits only."""
    if not tin:
        return ""
    return "".join(c for c in tin if c.isdigit())
