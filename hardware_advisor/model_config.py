"""Build a ModelSpec from a Hugging Face style ``config.json`` mapping.

Config files name the same quantity differently per model type (``n_embd``
for GPT-2, ``d_model`` for T5, ``num_local_experts`` for Mixtral...). The
alias tables below are searched in order; the first key present wins.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from .errors import IncompleteModelSpec
from .models import ArchitectureFamily, ModelSpec, Precision

logger = logging.getLogger(__name__)

HIDDEN_SIZE_KEYS = ("hidden_size", "n_embd", "n_embed", "d_model", "dim")
NUM_LAYERS_KEYS = ("num_hidden_layers", "n_layer", "num_layers", "n_layers")
NUM_HEADS_KEYS = ("num_attention_heads", "n_head", "num_heads", "n_heads")
NUM_KV_HEADS_KEYS = ("num_key_value_heads", "num_kv_heads", "n_head_kv", "multi_query_group_num")
INTERMEDIATE_SIZE_KEYS = ("intermediate_size", "n_inner", "ffn_dim", "d_ff", "ffn_hidden_size")
MAX_POSITION_KEYS = ("max_position_embeddings", "n_positions", "max_sequence_length", "seq_length")
NUM_EXPERTS_KEYS = ("num_local_experts", "num_experts", "n_routed_experts", "moe_num_experts")
EXPERTS_PER_TOKEN_KEYS = ("num_experts_per_tok", "num_experts_per_token", "moe_top_k")
EXPERT_INTERMEDIATE_KEYS = ("moe_intermediate_size", "expert_intermediate_size")

# MLPs with a gate projection (SwiGLU/GeGLU) carry three weight matrices
GATED_MLP_MODEL_TYPES = {
    "llama",
    "mistral",
    "mixtral",
    "qwen2",
    "qwen2_moe",
    "qwen3",
    "qwen3_moe",
    "gemma",
    "gemma2",
    "phi3",
    "deepseek_v2",
    "deepseek_v3",
    "olmoe",
}

# Encoder-decoder models whose decoder stacks carry an extra cross-attention block
ENCODER_DECODER_MODEL_TYPES = {"t5", "mt5", "bart", "mbart", "pegasus", "marian"}

CONVOLUTIONAL_MODEL_TYPES = {
    "resnet",
    "convnext",
    "convnextv2",
    "regnet",
    "efficientnet",
    "mobilenet_v1",
    "mobilenet_v2",
    "bit",
    "van",
}


def _first(config: Mapping[str, Any], keys: Sequence[str]) -> Optional[Any]:
    for key in keys:
        value = config.get(key)
        if value is not None:
            return value
    return None


def _precision_from_config(config: Mapping[str, Any]) -> Precision:
    quantization = config.get("quantization_config") or {}
    if quantization.get("load_in_4bit") or quantization.get("bits") == 4:
        return Precision.INT4
    if quantization.get("load_in_8bit") or quantization.get("bits") == 8:
        return Precision.INT8

    dtype = config.get("torch_dtype") or config.get("dtype")
    if dtype is None:
        return Precision.FP16
    try:
        return Precision(dtype)
    except ValueError:
        logger.warning("Unrecognized dtype '%s', assuming fp16 weights", dtype)
        return Precision.FP16


def _family(config: Mapping[str, Any]) -> ArchitectureFamily:
    model_type = config.get("model_type", "")
    if model_type in CONVOLUTIONAL_MODEL_TYPES:
        return ArchitectureFamily.CONVOLUTIONAL
    num_experts = _first(config, NUM_EXPERTS_KEYS)
    if num_experts is not None and num_experts > 1:
        return ArchitectureFamily.MIXTURE_OF_EXPERTS
    if _first(config, HIDDEN_SIZE_KEYS) is None and _first(config, NUM_HEADS_KEYS) is None:
        return ArchitectureFamily.OTHER
    return ArchitectureFamily.DENSE_TRANSFORMER


def estimate_parameter_counts(config: Mapping[str, Any]) -> Dict[str, int]:
    """Approximate total and active parameter counts from layer dimensions.

    Counts token embeddings (and an untied output head), the four attention
    projections and the MLP of every layer. Norms and biases are ignored;
    they are well under 1% of any model large enough to need this tool.

    Returns:
        Dict with "total" and "active" parameter counts

    Raises:
        IncompleteModelSpec: if the dimensions needed for the estimate are absent
    """
    hidden = _first(config, HIDDEN_SIZE_KEYS)
    layers = _first(config, NUM_LAYERS_KEYS)
    heads = _first(config, NUM_HEADS_KEYS)
    vocab = config.get("vocab_size")

    missing = [
        name
        for name, value in (
            ("hidden_size", hidden),
            ("num_layers", layers),
            ("num_attention_heads", heads),
            ("vocab_size", vocab),
        )
        if value is None
    ]
    if missing:
        raise IncompleteModelSpec(_family(config).value, ["parameter_count"] + missing)

    model_type = config.get("model_type", "")
    kv_heads = _first(config, NUM_KV_HEADS_KEYS) or heads
    head_dim = config.get("head_dim") or hidden // heads
    intermediate = _first(config, INTERMEDIATE_SIZE_KEYS) or 4 * hidden
    mlp_matrices = 3 if model_type in GATED_MLP_MODEL_TYPES else 2

    embeddings = vocab * hidden
    if not config.get("tie_word_embeddings", True):
        embeddings *= 2
    attention = hidden * heads * head_dim * 2 + hidden * kv_heads * head_dim * 2

    num_experts = _first(config, NUM_EXPERTS_KEYS)
    if num_experts is not None and num_experts > 1:
        experts_per_token = _first(config, EXPERTS_PER_TOKEN_KEYS) or 1
        expert_mlp = mlp_matrices * hidden * (_first(config, EXPERT_INTERMEDIATE_KEYS) or intermediate)
        shared_mlp = mlp_matrices * hidden * (config.get("shared_expert_intermediate_size") or 0)
        router = hidden * num_experts
        total_layer = attention + router + shared_mlp + num_experts * expert_mlp
        active_layer = attention + router + shared_mlp + experts_per_token * expert_mlp
    else:
        total_layer = active_layer = attention + mlp_matrices * hidden * intermediate

    total = embeddings + layers * total_layer
    active = embeddings + layers * active_layer

    if model_type in ENCODER_DECODER_MODEL_TYPES:
        decoder_layers = config.get("num_decoder_layers") or layers
        decoder_layer = total_layer + attention
        total += decoder_layers * decoder_layer
        active += decoder_layers * decoder_layer

    return {"total": total, "active": active}


def model_spec_from_config(
    config: Mapping[str, Any],
    name: Optional[str] = None,
    parameter_count: Optional[int] = None,
) -> ModelSpec:
    """Map a Hugging Face model config onto a ModelSpec.

    Args:
        config: Parsed ``config.json``
        name: Model name (defaults to ``_name_or_path`` or ``model_type``)
        parameter_count: Exact parameter count when known (e.g. from the Hub
            safetensors metadata); estimated from the dimensions otherwise

    Returns:
        ModelSpec

    Raises:
        IncompleteModelSpec: if the config lacks the fields the family needs
    """
    config = dict(config)
    family = _family(config)
    name = name or config.get("_name_or_path") or config.get("model_type") or "model"

    if family is ArchitectureFamily.CONVOLUTIONAL or family is ArchitectureFamily.OTHER:
        if parameter_count is None:
            raise IncompleteModelSpec(family.value, ["parameter_count"])
        return ModelSpec(
            name=name,
            parameter_count=parameter_count,
            architecture_family=family,
            native_precision=_precision_from_config(config),
        )

    active_parameter_count = None
    if parameter_count is None or family is ArchitectureFamily.MIXTURE_OF_EXPERTS:
        counts = estimate_parameter_counts(config)
        if parameter_count is None:
            parameter_count = counts["total"]
            logger.info("Estimated %s at %.2fB parameters from its config", name, parameter_count / 1e9)
        if family is ArchitectureFamily.MIXTURE_OF_EXPERTS:
            # Scale the estimated active share onto the (possibly exact) total
            active_parameter_count = min(
                parameter_count, round(parameter_count * counts["active"] / counts["total"])
            )

    layers = _first(config, NUM_LAYERS_KEYS)
    if layers is not None and config.get("model_type") in ENCODER_DECODER_MODEL_TYPES:
        layers += config.get("num_decoder_layers") or layers

    return ModelSpec(
        name=name,
        parameter_count=parameter_count,
        architecture_family=family,
        native_precision=_precision_from_config(config),
        hidden_size=_first(config, HIDDEN_SIZE_KEYS),
        num_layers=layers,
        num_attention_heads=_first(config, NUM_HEADS_KEYS),
        num_kv_heads=_first(config, NUM_KV_HEADS_KEYS),
        vocab_size=config.get("vocab_size"),
        max_sequence_length=_first(config, MAX_POSITION_KEYS),
        num_experts=_first(config, NUM_EXPERTS_KEYS) if family is ArchitectureFamily.MIXTURE_OF_EXPERTS else None,
        experts_per_token=(
            _first(config, EXPERTS_PER_TOKEN_KEYS) if family is ArchitectureFamily.MIXTURE_OF_EXPERTS else None
        ),
        active_parameter_count=active_parameter_count,
    )


def load_model_config(path: Union[str, Path], name: Optional[str] = None) -> ModelSpec:
    """Read a local ``config.json`` and convert it to a ModelSpec."""
    with open(path, "r") as f:
        config = json.load(f)
    return model_spec_from_config(config, name=name)
