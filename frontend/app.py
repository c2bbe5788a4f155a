import base64
import uuid
from io import BytesIO

import streamlit as st
from PIL import Image

from backend.model import (
    DEFAULT_VIDEO_DURATION,
    IMAGE_ASPECT_RATIOS,
    VIDEO_ASPECT_RATIOS,
    VIDEO_DURATIONS,
)
from backend.utils import ALLOWED_IMAGE_TYPES, extension_for
from config.settings import configure_logging
from frontend.api import BACKEND_URL
from frontend.panels import EditPanel, GeneratePanel, VideoPanel, validate_upload

UPLOAD_TYPES = ["png", "jpg", "jpeg", "webp"]


def decode_image(data: str) -> tuple:
    """base64 -> (PIL Image, raw bytes)"""
    raw = base64.b64decode(data)
    return Image.open(BytesIO(raw)), raw


def show_upload_preview(uploaded) -> bool:
    """Preview an upload, or show why it was rejected. Returns True if usable."""
    if uploaded is None:
        return False
    error = validate_upload(uploaded)
    if error:
        st.error(error)
        return False
    st.image(uploaded, caption="Preview", use_container_width=True)
    return True


# ==========================
# Config
# ==========================
configure_logging()

st.set_page_config(
    page_title="AI Photo Studio",
    page_icon="🎨",
    layout="wide"
)

st.title("🎨 AI Photo Studio")
st.caption("Generate images, edit photos and create short videos with Gemini")

# ==========================
# State
# ==========================
if "owner_id" not in st.session_state:
    st.session_state["owner_id"] = f"session_{uuid.uuid4().hex[:12]}"

if "generate_panel" not in st.session_state:
    st.session_state["generate_panel"] = GeneratePanel()

if "edit_panel" not in st.session_state:
    st.session_state["edit_panel"] = EditPanel()

if "video_panel" not in st.session_state:
    st.session_state["video_panel"] = VideoPanel(owner_id=st.session_state["owner_id"])

generate_panel: GeneratePanel = st.session_state["generate_panel"]
edit_panel: EditPanel = st.session_state["edit_panel"]
video_panel: VideoPanel = st.session_state["video_panel"]

# ==========================
# Sidebar
# ==========================
with st.sidebar:
    st.header("⚙️ Settings")
    st.write("🔗 Backend:", BACKEND_URL)
    st.markdown(f"**🪪 Session:** `{st.session_state['owner_id']}`")

    st.markdown("---")

    if st.button("🗑️ Reset studio", use_container_width=True):
        video_panel.teardown()
        for key in ("generate_panel", "edit_panel", "video_panel"):
            del st.session_state[key]
        st.rerun()

    st.markdown("---")
    st.markdown("### 💡 Examples")
    st.code("A majestic lion wearing a crown, photorealistic style")
    st.code("Add a retro filter and a rainbow in the sky")
    st.code("A neon hologram of a cat driving at top speed")

tab_generate, tab_edit, tab_video = st.tabs(["✨ Generate Image", "✏️ Edit Image", "🎬 Generate Video"])

# ==========================
# Generate image
# ==========================
with tab_generate:
    col1, col2 = st.columns([2, 1])
    with col1:
        gen_prompt = st.text_area(
            "Describe the image you want to create",
            placeholder="e.g., A majestic lion wearing a crown, photorealistic style",
            key="gen_prompt",
        )
    with col2:
        gen_ratio = st.selectbox("Aspect Ratio", IMAGE_ASPECT_RATIOS, key="gen_ratio")

    if st.button("✨ Generate", use_container_width=True, disabled=not gen_prompt.strip()):
        with st.spinner("🎨 Generating..."):
            generate_panel.run(gen_prompt, gen_ratio)

    if generate_panel.state.error:
        st.error(f"❌ {generate_panel.state.error}")

    if generate_panel.state.status == "success":
        data_uri: str = generate_panel.state.result
        image, img_bytes = decode_image(data_uri.split(",", 1)[1])
        st.image(image, caption="✨ Result", use_container_width=True)
        st.download_button(
            "⬇️ Download",
            data=img_bytes,
            file_name=generate_panel.download_name,
            mime="image/png",
            key="download_generated",
        )
    elif generate_panel.state.status == "idle":
        st.info("🖼️ Your generated image will appear here")

# ==========================
# Edit image
# ==========================
with tab_edit:
    col1, col2 = st.columns(2)
    with col1:
        uploaded = st.file_uploader("1. Upload an image", type=UPLOAD_TYPES, key="edit_upload")
        can_edit = show_upload_preview(uploaded)
        edit_prompt = st.text_area(
            "2. Describe your edit",
            placeholder="e.g., Add a retro filter",
            key="edit_prompt",
        )
        if st.button("✏️ Edit", use_container_width=True, disabled=not (can_edit and edit_prompt.strip())):
            with st.spinner("Editing in progress..."):
                edit_panel.run(edit_prompt, uploaded)
        if edit_panel.state.error:
            st.error(f"❌ {edit_panel.state.error}")

    with col2:
        st.markdown("**Result**")
        if edit_panel.state.status == "success":
            for index, part in enumerate(edit_panel.state.result):
                if part.text:
                    st.markdown(part.text)
                if part.inline_data:
                    image, img_bytes = decode_image(part.inline_data.data)
                    st.image(image, use_container_width=True)
                    ext = extension_for(part.inline_data.mime_type)
                    st.download_button(
                        "⬇️ Download",
                        data=img_bytes,
                        file_name=f"edited-image-{index + 1}.{ext}",
                        mime=part.inline_data.mime_type,
                        key=f"download_edit_{index}",
                    )
        else:
            st.info("🖼️ Your edited image and text will appear here")

# ==========================
# Generate video
# ==========================
with tab_video:
    col1, col2 = st.columns(2)
    with col1:
        video_prompt = st.text_area(
            "1. Describe the video",
            placeholder="e.g., A neon hologram of a cat driving at top speed",
            key="video_prompt",
        )
        c1, c2 = st.columns(2)
        with c1:
            video_ratio = st.selectbox("Aspect Ratio", VIDEO_ASPECT_RATIOS, key="video_ratio")
        with c2:
            video_duration = st.selectbox(
                "Duration (secs)",
                VIDEO_DURATIONS,
                index=VIDEO_DURATIONS.index(DEFAULT_VIDEO_DURATION),
                key="video_duration",
            )
        seed_image = st.file_uploader(
            "2. (Optional) Upload an image to animate", type=UPLOAD_TYPES, key="video_upload"
        )
        seed_ok = seed_image is None or show_upload_preview(seed_image)

        start = st.button(
            "🎬 Generate Video",
            use_container_width=True,
            disabled=not (video_prompt.strip() and seed_ok),
        )
        if video_panel.state.error:
            st.error(f"❌ {video_panel.state.error}")

    with col2:
        st.markdown("**Result**")
        if start:
            progress = st.empty()
            progress.info(f"⏳ {video_panel.progress.current()}\n\n(This may take several minutes)")

            def on_tick(_status) -> None:
                progress.info(f"⏳ {video_panel.progress.current()}\n\n(This may take several minutes)")

            with st.spinner("🎬 Generating video..."):
                video_panel.run(
                    video_prompt,
                    video_ratio,
                    int(video_duration),
                    uploaded=seed_image,
                    on_tick=on_tick,
                )
            progress.empty()
            st.rerun()

        if video_panel.video is not None:
            video_bytes = video_panel.video.read_bytes()
            st.video(video_bytes, format=video_panel.video.mime_type, loop=True, autoplay=True)
            st.download_button(
                "⬇️ Download",
                data=video_bytes,
                file_name=video_panel.download_name,
                mime="video/mp4",
                key="download_video",
            )
        else:
            st.info("🎞️ Your generated video will appear here")

st.caption(f"Accepted uploads: {', '.join(ALLOWED_IMAGE_TYPES)} · Powered by Gemini API")
