"""Resolve a ModelSpec from the Hugging Face Hub.

Requires the optional ``config_explorer`` package (``pip install
hardware-advisor[hub]``). For gated models set the HF_TOKEN environment
variable or pass ``hf_token``.
"""

import logging
import os
from typing import Optional

from .errors import ModelFetchError
from .model_config import model_spec_from_config
from .models import ModelSpec

try:
    from config_explorer.capacity_planner import (
        get_model_config_from_hf,
        get_model_info_from_hf,
        model_total_params,
    )
    HAS_CONFIG_EXPLORER = True
except ImportError:
    HAS_CONFIG_EXPLORER = False

logger = logging.getLogger(__name__)


def fetch_model_spec(model_id: str, hf_token: Optional[str] = None) -> ModelSpec:
    """Fetch a model's config and parameter count from the Hub.

    Args:
        model_id: Hub identifier (e.g. "Qwen/Qwen2.5-7B")
        hf_token: Access token (defaults to the HF_TOKEN environment variable)

    Returns:
        ModelSpec built from the model's config.json, with the exact
        parameter count from the safetensors metadata when available

    Raises:
        ModelFetchError: if config_explorer is missing or the fetch fails
    """
    if not HAS_CONFIG_EXPLORER:
        raise ModelFetchError(
            model_id,
            "config_explorer is not installed. Install the 'hub' extra or describe "
            "the model with --model / --model-config instead",
        )

    if hf_token is None:
        hf_token = os.environ.get("HF_TOKEN")

    logger.info("Fetching %s from the Hugging Face Hub", model_id)
    try:
        model_info = get_model_info_from_hf(model_id, hf_token)
        model_config = get_model_config_from_hf(model_id, hf_token)
        parameter_count = model_total_params(model_info)
    except Exception as e:
        raise ModelFetchError(model_id, str(e)) from e

    config = model_config.to_dict() if hasattr(model_config, "to_dict") else dict(model_config)
    return model_spec_from_config(config, name=model_id, parameter_count=parameter_count or None)
