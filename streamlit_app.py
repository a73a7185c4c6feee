#!/usr/bin/env python3
"""Streamlit UI for the Hardware Advisor.

This application provides an interactive interface for hardware
recommendation, allowing users to describe models, a workload and a hardware
catalog, invoke the recommendation engine, and inspect the results.
"""

import json
from typing import List

import pandas as pd
import streamlit as st

from hardware_advisor import (
    HardwareAdvisorError,
    HardwareProfile,
    ModelSpec,
    RecommendationEngine,
    RecommendationResult,
    ResourceEstimator,
    WorkloadIntent,
    add_hardware_profiles,
    create_custom_hardware,
    get_hardware_profiles,
    list_available_hardware,
    model_spec_from_config,
)
from hardware_advisor.constants import GB, TERA
from hardware_advisor.hub import HAS_CONFIG_EXPLORER, fetch_model_spec
from hardware_advisor.models import ArchitectureFamily, OptimizerKind, Precision, WorkloadMode
from hardware_advisor.report import recommendations_frame, rejections_frame, summary_frame, to_csv

# Page configuration
st.set_page_config(
    page_title="Hardware Advisor",
    page_icon="🖥️",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown(
    """
    <style>
    .main-header {
        font-size: 2.5rem;
        font-weight: bold;
        color: #1f77b4;
    }
    </style>
    """,
    unsafe_allow_html=True,
)


def main():
    """Main Streamlit application."""
    st.markdown('<h1 class="main-header">🖥️ Hardware Advisor</h1>', unsafe_allow_html=True)
    st.markdown("**Find the smallest hardware setup that runs or trains your model**")

    if "models" not in st.session_state:
        st.session_state.models = []
    if "hardware" not in st.session_state:
        st.session_state.hardware = []
    if "results" not in st.session_state:
        st.session_state.results = None

    with st.sidebar:
        st.header("⚙️ Workload")
        mode = st.selectbox("Mode", options=[m.value for m in WorkloadMode])
        batch_size = st.number_input("Batch Size", min_value=1, value=1, step=1)
        sequence_length = st.number_input("Sequence Length", min_value=1, value=2048, step=256)
        max_devices = st.number_input("Max Devices", min_value=1, value=1, step=1)
        precisions = st.multiselect(
            "Allowed Precisions",
            options=[p.value for p in Precision],
            default=[],
            help="Leave empty to use each model's native precision",
        )
        preferred = st.selectbox("Preferred Precision", options=["(none)"] + [p.value for p in Precision])
        optimizer = st.selectbox(
            "Optimizer",
            options=[o.value for o in OptimizerKind],
            index=[o.value for o in OptimizerKind].index(OptimizerKind.ADAM.value),
            disabled=mode != WorkloadMode.TRAINING.value,
        )
        target_throughput = st.number_input(
            "Target Throughput (items/s)",
            min_value=0.0,
            value=0.0,
            step=10.0,
            help="0 means no throughput requirement",
        )
        autoregressive = st.checkbox("Autoregressive decoding (KV-cache)", value=True)

        st.header("🔧 Estimator")
        memory_overhead = st.number_input("Memory Overhead Fraction", min_value=0.0, value=0.0, step=0.05)
        compute_efficiency = st.slider("Compute Efficiency", min_value=0.05, max_value=1.0, value=1.0)

    tab1, tab2, tab3 = st.tabs(["📊 Recommendations", "🤖 Models", "🖥️ Hardware"])

    with tab2:
        render_models_tab()
    with tab3:
        render_hardware_tab()
    with tab1:
        st.header("Recommendations")
        if not st.session_state.models:
            st.warning("⚠️ Please add models in the 'Models' tab first")
            return
        if not st.session_state.hardware:
            st.warning("⚠️ Please add hardware in the 'Hardware' tab first")
            return

        if st.button("🚀 Generate Recommendations", type="primary", use_container_width=True):
            try:
                intent = WorkloadIntent(
                    mode=mode,
                    batch_size=int(batch_size),
                    sequence_length=int(sequence_length),
                    target_throughput=target_throughput or None,
                    max_device_count=int(max_devices),
                    allowed_precisions=precisions or None,
                    optimizer_kind=optimizer,
                    autoregressive=autoregressive,
                    preferred_precision=None if preferred == "(none)" else preferred,
                )
                engine = RecommendationEngine(
                    estimator=ResourceEstimator(
                        memory_overhead_fraction=memory_overhead,
                        compute_efficiency=compute_efficiency,
                    )
                )
                st.session_state.results = engine.recommend_for_models(
                    st.session_state.models, intent, st.session_state.hardware
                )
                st.success("✅ Recommendations generated!")
            except HardwareAdvisorError as e:
                st.error(f"❌ Error generating recommendations: {e}")
                return

        if st.session_state.results:
            display_recommendations(st.session_state.results)


def render_models_tab():
    """Manual entry, JSON upload and Hub fetch of model descriptions."""
    st.header("Models")
    col1, col2 = st.columns([2, 1])

    with col1:
        input_method = st.radio(
            "Input Method",
            ["Manual Entry", "Upload JSON", "Hugging Face Hub"],
            horizontal=True,
        )

        if input_method == "Manual Entry":
            with st.form("add_model_form"):
                model_name = st.text_input("Model Name", placeholder="e.g., llama-2-7b")
                family = st.selectbox("Architecture", options=[f.value for f in ArchitectureFamily])
                num_params = st.number_input("Parameters (billions)", min_value=0.0, value=7.0, step=0.5)
                native_precision = st.selectbox(
                    "Native Precision",
                    options=[p.value for p in Precision],
                    index=[p.value for p in Precision].index(Precision.FP16.value),
                )
                num_layers = st.number_input("Number of Layers", min_value=0, value=32, step=1)
                hidden_size = st.number_input("Hidden Size", min_value=0, value=4096, step=64)
                num_heads = st.number_input("Attention Heads", min_value=0, value=32, step=1)
                num_kv_heads = st.number_input("KV Heads (0 = same as attention heads)", min_value=0, value=0)

                submitted = st.form_submit_button("Add Model", type="primary")
                if submitted:
                    try:
                        model = ModelSpec(
                            name=model_name or "model",
                            parameter_count=int(num_params * 1e9),
                            architecture_family=family,
                            native_precision=native_precision,
                            num_layers=int(num_layers),
                            hidden_size=int(hidden_size),
                            num_attention_heads=int(num_heads),
                            num_kv_heads=int(num_kv_heads),
                        )
                        if any(m.name == model.name for m in st.session_state.models):
                            st.warning(f"Model '{model.name}' is already in the list")
                        else:
                            st.session_state.models.append(model)
                            st.success(f"✅ Added model: {model.name}")
                    except HardwareAdvisorError as e:
                        st.error(f"❌ Error adding model: {e}")

        elif input_method == "Upload JSON":
            uploaded_file = st.file_uploader(
                "Upload a list of model descriptions or a Hugging Face config.json",
                type=["json"],
                key="models_json_upload",
            )
            if uploaded_file is not None:
                try:
                    data = json.load(uploaded_file)
                    if st.button("Load Models from JSON", key="load_models_json"):
                        known = {m.name for m in st.session_state.models}
                        loaded_count = 0
                        for model in parse_uploaded_models(data, uploaded_file.name):
                            if model.name in known:
                                st.warning(f"Skipped model {model.name}: already in the list")
                                continue
                            st.session_state.models.append(model)
                            known.add(model.name)
                            loaded_count += 1
                        st.success(f"✅ Loaded {loaded_count} models")
                except json.JSONDecodeError as e:
                    st.error(f"❌ Error parsing JSON: {e}")
                except HardwareAdvisorError as e:
                    st.error(f"❌ Error loading model: {e}")

        else:
            if not HAS_CONFIG_EXPLORER:
                st.info("Install the 'hub' extra to fetch models from the Hugging Face Hub")
            model_id = st.text_input("Model ID", placeholder="e.g., Qwen/Qwen2.5-7B")
            if st.button("Fetch", disabled=not HAS_CONFIG_EXPLORER) and model_id:
                try:
                    model = fetch_model_spec(model_id)
                    if any(m.name == model.name for m in st.session_state.models):
                        st.warning(f"Model '{model.name}' is already in the list")
                    else:
                        st.session_state.models.append(model)
                        st.success(f"✅ Fetched model: {model.name}")
                except HardwareAdvisorError as e:
                    st.error(f"❌ {e}")

    with col2:
        st.subheader("Current Models")
        if st.session_state.models:
            for idx, model in enumerate(st.session_state.models):
                cols = st.columns([4, 1])
                with cols[0]:
                    st.write(f"**{model.name}** ({model.parameter_count / 1e9:.1f}B, {model.native_precision.value})")
                with cols[1]:
                    if st.button("🗑️", key=f"del_model_{idx}"):
                        st.session_state.models.pop(idx)
                        st.rerun()
            if st.button("Clear All Models"):
                st.session_state.models = []
                st.rerun()
        else:
            st.info("No models added yet")


def parse_uploaded_models(data, filename: str = "model") -> List[ModelSpec]:
    """Accept a ModelSpec object, a list of them, or a Hugging Face config."""
    if isinstance(data, list):
        return [ModelSpec.from_dict(item) for item in data]
    if "parameter_count" in data:
        return [ModelSpec.from_dict(data)]
    return [model_spec_from_config(data, name=data.get("_name_or_path") or filename.rsplit(".", 1)[0])]


def render_hardware_tab():
    """Library selection, custom entry and JSON upload of hardware profiles."""
    st.header("Hardware")
    col1, col2 = st.columns([2, 1])

    with col1:
        st.subheader("From Library")
        selected = st.multiselect("Library Hardware", options=list_available_hardware())
        if st.button("Add Selected") and selected:
            add_hardware_profiles(st.session_state.hardware, get_hardware_profiles(selected))
            st.rerun()

        st.subheader("Custom Hardware")
        with st.form("add_hardware_form"):
            hardware_id = st.text_input("Hardware ID", placeholder="e.g., my-accelerator")
            col_a, col_b = st.columns(2)
            with col_a:
                memory_gb = st.number_input("Memory (GB)", min_value=1.0, value=80.0, step=1.0)
                tflops_fp16 = st.number_input("TFLOPS FP16", min_value=1.0, value=312.0, step=1.0)
                cost_per_hour = st.number_input("Cost per Hour ($)", min_value=0.0, value=0.0, step=0.1)
            with col_b:
                bandwidth = st.number_input("Memory Bandwidth (GB/s)", min_value=1.0, value=2039.0, step=10.0)
                interconnect = st.number_input(
                    "Interconnect (GB/s, 0 = none)", min_value=0.0, value=0.0, step=10.0
                )

            submitted = st.form_submit_button("Add Hardware", type="primary")
            if submitted:
                try:
                    profile = create_custom_hardware(
                        hardware_id=hardware_id,
                        memory_gb=memory_gb,
                        memory_bandwidth_gb_s=bandwidth,
                        tflops_fp16=tflops_fp16,
                        interconnect_bandwidth_gb_s=interconnect or None,
                        cost_per_hour=cost_per_hour or None,
                    )
                    if add_hardware_profiles(st.session_state.hardware, [profile]):
                        st.warning(f"Hardware '{profile.id}' is already in the catalog")
                    else:
                        st.success(f"✅ Added hardware: {profile.id}")
                except HardwareAdvisorError as e:
                    st.error(f"❌ Error adding hardware: {e}")

        uploaded_file = st.file_uploader("Upload hardware JSON", type=["json"], key="hardware_upload")
        if uploaded_file is not None:
            try:
                hardware_data = json.load(uploaded_file)
                if st.button("Load Hardware from JSON", key="load_hardware_json"):
                    profiles = []
                    for item in hardware_data:
                        try:
                            profiles.append(HardwareProfile.from_dict(item))
                        except HardwareAdvisorError as e:
                            st.warning(f"Skipped hardware {item.get('id', item.get('name', 'unknown'))}: {e}")
                    skipped = add_hardware_profiles(st.session_state.hardware, profiles)
                    for hardware_id in skipped:
                        st.warning(f"Skipped hardware {hardware_id}: already in the catalog")
                    st.success(f"✅ Loaded {len(profiles) - len(skipped)} hardware profiles")
            except json.JSONDecodeError as e:
                st.error(f"❌ Error parsing JSON: {e}")

    with col2:
        st.subheader("Current Hardware")
        if st.session_state.hardware:
            for idx, profile in enumerate(st.session_state.hardware):
                cols = st.columns([4, 1])
                with cols[0]:
                    st.write(
                        f"**{profile.id}** ({profile.memory_capacity_bytes / GB:.0f} GB, "
                        f"{profile.compute_throughput / TERA:.0f} TFLOPS)"
                    )
                with cols[1]:
                    if st.button("🗑️", key=f"del_hw_{idx}"):
                        st.session_state.hardware.pop(idx)
                        st.rerun()
            if st.button("Clear All Hardware"):
                st.session_state.hardware = []
                st.rerun()
        else:
            st.info("No hardware added yet")


def display_recommendations(results: List[RecommendationResult]):
    """Display recommendation results in tables and a per-model detail view."""
    st.divider()

    st.subheader("📈 Summary")
    col1, col2, col3 = st.columns(3)
    recommended = [r for r in results if r.recommended]
    with col1:
        st.metric("Total Models", len(results))
    with col2:
        st.metric("Models with Hardware", len(recommended))
    with col3:
        costs = [r.recommended.total_cost_per_hour for r in recommended if r.recommended.total_cost_per_hour]
        st.metric("Total Cost", f"${sum(costs):.2f}/hr" if costs else "N/A")

    st.dataframe(summary_frame(results), use_container_width=True, hide_index=True)

    st.subheader("🏆 Ranked Options")
    df = recommendations_frame(results)
    if not df.empty:
        col1, col2 = st.columns(2)
        with col1:
            filter_hw = st.multiselect(
                "Filter by Hardware", options=df["Hardware"].unique(), default=df["Hardware"].unique()
            )
        with col2:
            filter_bottleneck = st.multiselect(
                "Filter by Bottleneck",
                options=df["Bottleneck"].unique(),
                default=df["Bottleneck"].unique(),
            )
        filtered_df = df[df["Hardware"].isin(filter_hw) & df["Bottleneck"].isin(filter_bottleneck)]
        st.dataframe(filtered_df, use_container_width=True, hide_index=True)

    st.subheader("📋 Detailed Results")
    for result in results:
        best = result.recommended
        title = best.hardware_id if best else "No recommendation"
        with st.expander(f"**{result.model_name}** → {title}"):
            if best:
                estimate = best.resource_estimate
                col1, col2, col3, col4 = st.columns(4)
                with col1:
                    st.metric(
                        "Throughput",
                        f"{best.estimated_throughput:.1f} {best.throughput_unit}/s",
                        help=f"Peak compute rate: {best.compute_bound_throughput:.1f} {best.throughput_unit}/s",
                    )
                with col2:
                    st.metric("Memory / Device", f"{estimate.total_memory_bytes / GB:.1f} GB")
                with col3:
                    st.metric("Headroom", f"{best.fit_margin / GB:.1f} GB")
                with col4:
                    st.metric("Devices", best.configuration.device_count)

                st.markdown("**Memory Breakdown:**")
                breakdown = pd.DataFrame(
                    {
                        "Component": ["Weights", "Activations", "Gradients", "Optimizer", "KV Cache", "Overhead"],
                        "GB": [
                            estimate.weight_memory_bytes / GB,
                            estimate.activation_memory_bytes / GB,
                            estimate.gradient_memory_bytes / GB,
                            estimate.optimizer_state_memory_bytes / GB,
                            estimate.kv_cache_memory_bytes / GB,
                            estimate.overhead_memory_bytes / GB,
                        ],
                    }
                )
                st.bar_chart(breakdown, x="Component", y="GB")

            st.markdown("**Reasoning:**")
            st.info(result.reasoning)

            rejected = rejections_frame(result)
            if not rejected.empty:
                st.markdown("**Rejected Pairings:**")
                st.dataframe(rejected, use_container_width=True, hide_index=True)

    st.divider()

    st.subheader("💾 Export Results")
    col1, col2 = st.columns(2)
    with col1:
        json_data = json.dumps({"recommendations": [r.to_dict() for r in results]}, indent=2)
        st.download_button(
            label="📥 Download JSON",
            data=json_data,
            file_name="hardware_recommendations.json",
            mime="application/json",
            use_container_width=True,
        )
    with col2:
        st.download_button(
            label="📥 Download CSV",
            data=to_csv(df),
            file_name="hardware_recommendations.csv",
            mime="text/csv",
            use_container_width=True,
        )


if __name__ == "__main__":
    main()
