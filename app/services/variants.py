import re
from typing import Any, NamedTuple, Optional

WHEEL_SIZE_PATTERN = re.compile(r"\s*\((\d+)\s*inch\s*wheels?\)", re.IGNORECASE)


class VariantKey(NamedTuple):
    base_model: str
    wheel_size: Optional[str]


def detect_wheel_size(model_name: Any) -> Optional[str]:
    """Returns "19 inch" for "Model X (19 inch wheels)", None when there is no annotation."""
    if not isinstance(model_name, str):
        return None
    match = WHEEL_SIZE_PATTERN.search(model_name)
    return f"{match.group(1)} inch" if match else None


def extract_base_model(model_name: Any) -> str:
    """Strip every wheel size annotation. The result is the model part of the vehicle identity key."""
    if not isinstance(model_name, str):
        return ""
    return WHEEL_SIZE_PATTERN.sub("", model_name).strip()


def extract_variant_key(model_name: Any) -> VariantKey:
    return VariantKey(extract_base_model(model_name), detect_wheel_size(model_name))
