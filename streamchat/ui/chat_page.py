"""NiceGUI chat interface driven by the streaming engine."""

import logging
from datetime import datetime

from nicegui import ui

from streamchat.models.schemas import DeliveryEvent, ErrorKind
from streamchat.streaming.scheduler import AsyncioScheduler
from streamchat.streaming.session import StreamController, StreamSession

logger = logging.getLogger(__name__)

# Characters of an error message shown inside the chat bubble
ERROR_PREVIEW_LENGTH = 150

CUSTOM_CSS = """
<style>
    body { background: #f5f5f5; min-height: 100vh; }

    .app-container {
        background: white;
        border-radius: 12px;
        box-shadow: 0 2px 8px rgba(0, 0, 0, 0.1);
        overflow: hidden;
    }

    .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); }

    .message-user {
        background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
        color: white;
        border-radius: 18px 18px 4px 18px;
    }

    .message-assistant {
        background: #f3f4f6;
        color: #1f2937;
        border-radius: 18px 18px 18px 4px;
    }

    .message-error { background: #fee2e2; color: #b91c1c; }

    .typing-dot {
        width: 8px; height: 8px;
        background: #667eea;
        border-radius: 50%;
        animation: bounce 1.4s infinite ease-in-out;
    }
    .typing-dot:nth-child(2) { animation-delay: 0.2s; }
    .typing-dot:nth-child(3) { animation-delay: 0.4s; }

    @keyframes bounce {
        0%, 60%, 100% { transform: translateY(0); }
        30% { transform: translateY(-6px); }
    }
</style>
"""


class ChatState:
    """Manages chat state for one browser tab."""

    def __init__(self) -> None:
        self.messages: list[dict] = []
        self.active: StreamSession | None = None

    @property
    def is_streaming(self) -> bool:
        return self.active is not None and not self.active.done

    def add_message(self, role: str, content: str, error: bool = False) -> None:
        self.messages.append({
            "role": role,
            "content": content,
            "error": error,
            "time": datetime.now().strftime("%I:%M %p"),
        })


def describe_terminal(event: DeliveryEvent) -> tuple[str, bool] | None:
    """Turn a terminal event into the assistant message to keep.

    Returns:
        ``(content, is_error)``, or None when nothing should be shown
        (a cancelled answer with no text yet).
    """
    if event.error_kind is None:
        return event.text, False
    if event.error_kind is ErrorKind.USER_CANCELLED:
        return (event.text, False) if event.text else None
    error = event.error or event.error_kind.value.replace("_", " ")
    if len(error) > ERROR_PREVIEW_LENGTH:
        error = f"{error[:ERROR_PREVIEW_LENGTH]}..."
    if event.text:
        return f"{event.text}\n\n**Error:** {error}", True
    return f"**Error:** {error}", True


@ui.page("/")
def chat_page() -> None:
    """Main chat page."""
    ui.add_head_html(CUSTOM_CSS)
    state = ChatState()
    controller = StreamController(scheduler=AsyncioScheduler())
    # Leaving the page tears down any answer still streaming
    ui.context.client.on_disconnect(controller.cancel)

    messages_container: ui.column
    input_field: ui.textarea
    send_btn: ui.button
    stop_btn: ui.button

    def render_message(msg: dict) -> None:
        is_user = msg["role"] == "user"
        align = "justify-end" if is_user else "justify-start"
        bubble = "message-user" if is_user else "message-assistant"
        if msg["error"]:
            bubble = f"{bubble} message-error"

        with ui.row().classes(f"w-full {align}"):
            with ui.column().classes("max-w-[70%] gap-1"):
                with ui.element("div").classes(f"px-4 py-3 {bubble}"):
                    ui.markdown(msg["content"]).classes("text-sm leading-relaxed")
                ui.label(msg["time"]).classes(
                    f"text-[10px] text-gray-400 {'self-end' if is_user else 'self-start'}"
                )

    def refresh_messages() -> None:
        messages_container.clear()
        with messages_container:
            if not state.messages:
                with ui.column().classes("w-full h-64 items-center justify-center gap-3"):
                    ui.icon("forum").classes("text-5xl text-gray-300")
                    ui.label("Start a conversation").classes("text-lg text-gray-400")
            else:
                for msg in state.messages:
                    render_message(msg)

    def render_status_indicator(status_text: str = "Thinking...") -> ui.row:
        with ui.row().classes("w-full justify-start") as row:
            with ui.element("div").classes("message-assistant px-4 py-3"):
                with ui.row().classes("items-center gap-2"):
                    with ui.row().classes("gap-1"):
                        for _ in range(3):
                            ui.element("div").classes("typing-dot")
                    ui.label(status_text).classes("text-sm text-gray-500 italic")
        return row

    def set_streaming(streaming: bool) -> None:
        if streaming:
            send_btn.disable()
            stop_btn.enable()
        else:
            send_btn.enable()
            stop_btn.disable()

    async def send_message() -> None:
        text = input_field.value.strip()
        if not text or state.is_streaming:
            return

        input_field.value = ""
        state.add_message("user", text)
        refresh_messages()

        with messages_container:
            status_row = render_status_indicator()
        response_md: ui.markdown | None = None

        session = controller.submit(text)
        state.active = session
        set_streaming(True)

        def on_delta(event: DeliveryEvent) -> None:
            nonlocal response_md
            if response_md is None:
                status_row.delete()
                with messages_container, ui.row().classes("w-full justify-start"):
                    with ui.element("div").classes("message-assistant px-4 py-3 max-w-[70%]"):
                        response_md = ui.markdown("").classes("text-sm leading-relaxed")
            response_md.set_content(event.text)

        def on_terminal(event: DeliveryEvent) -> None:
            if state.active is not session:
                return
            state.active = None
            set_streaming(False)
            logger.debug(f"Answer {event.session_id[:8]} ended: {event.error_kind or 'completed'}")
            if (kept := describe_terminal(event)) is not None:
                content, is_error = kept
                state.add_message("assistant", content, error=is_error)
                if is_error:
                    ui.notify(f"Failed to get response: {event.error}", type="negative")
            refresh_messages()

        session.on_delta(on_delta).on_terminal(on_terminal)
        await session.wait()

    def stop_streaming() -> None:
        controller.cancel()

    def new_chat() -> None:
        state.active = None
        controller.cancel()
        set_streaming(False)
        state.messages.clear()
        refresh_messages()

    # === UI Layout ===
    with (
        ui.element("div").classes("w-full min-h-screen p-4 md:p-8"),
        ui.column().classes("w-full max-w-3xl mx-auto app-container").style(
            "height: calc(100vh - 4rem)"
        ),
    ):
        # Header
        with ui.row().classes("w-full header px-5 py-4 items-center justify-between"):
            with ui.row().classes("items-center gap-3"):
                ui.icon("smart_toy").classes("text-white text-3xl")
                ui.label("Chat").classes("text-lg font-semibold text-white")
            ui.button(icon="add", on_click=new_chat).props("flat round color=white")

        # Messages
        with (
            ui.scroll_area().classes("flex-grow w-full bg-gray-50"),
            ui.column().classes("w-full p-5"),
        ):
            messages_container = ui.column().classes("w-full gap-4")
            refresh_messages()

        # Input
        with ui.row().classes("w-full p-4 gap-3 items-end bg-white border-t"):
            input_field = (
                ui.textarea(placeholder="Type your message...")
                .props("autogrow outlined dense rows=1")
                .classes("flex-grow")
                .on("keydown.enter.prevent", send_message)
            )
            stop_btn = ui.button(icon="stop", on_click=stop_streaming).props("round flat")
            send_btn = ui.button(icon="send", on_click=send_message).props("round unelevated")
            stop_btn.disable()


def main() -> None:
    ui.run(title="Chat", port=8080, reload=False)


if __name__ in {"__main__", "__mp_main__"}:
    main()
