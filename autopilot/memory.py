"""Role-tagged conversation log sent to the vision model by the actor."""

from PIL import Image

IMAGE_PLACEHOLDER = "[screenshot omitted]"

# Rough cost of one downscaled screenshot, for logging only.
_TOKENS_PER_IMAGE = 1500


class ConversationMemory:
    """Ordered system/user/assistant messages.

    Content parts are provider-neutral dicts: {"type": "text", "text": str}
    or {"type": "image", "image": PIL.Image.Image}. The vision client
    converts them to its wire format.
    """

    def __init__(self) -> None:
        self._messages: list[dict] = []

    @classmethod
    def with_system_prompt(cls, prompt: str) -> "ConversationMemory":
        memory = cls()
        memory._messages.append({"role": "system", "content": [{"type": "text", "text": prompt}]})
        return memory

    def add_user_message(self, text: str, image: Image.Image | None = None) -> None:
        # Earlier screenshots are superseded by this one.
        self.strip_images()
        parts: list[dict] = [{"type": "text", "text": text}]
        if image is not None:
            parts.append({"type": "image", "image": image})
        self._messages.append({"role": "user", "content": parts})

    def add_assistant_message(self, text: str) -> None:
        self._messages.append({"role": "assistant", "content": [{"type": "text", "text": text}]})

    def strip_last_user_image(self) -> bool:
        """Replace images in the newest user message with a text placeholder."""
        for message in reversed(self._messages):
            if message["role"] == "user":
                return self._strip(message)
        return False

    def strip_images(self) -> int:
        stripped = 0
        for message in self._messages:
            if message["role"] == "user" and self._strip(message):
                stripped += 1
        return stripped

    @staticmethod
    def _strip(message: dict) -> bool:
        if not any(part["type"] == "image" for part in message["content"]):
            return False
        message["content"] = [
            part if part["type"] != "image" else {"type": "text", "text": IMAGE_PLACEHOLDER}
            for part in message["content"]
        ]
        return True

    def to_messages(self) -> list[dict]:
        """Snapshot of the log; later edits to memory do not affect it."""
        return [{"role": m["role"], "content": list(m["content"])} for m in self._messages]

    def size(self) -> int:
        return len(self._messages)

    def estimate_tokens(self) -> int:
        total = 0
        for message in self._messages:
            for part in message["content"]:
                if part["type"] == "text":
                    total += len(part["text"]) // 4
                else:
                    total += _TOKENS_PER_IMAGE
        return total

    def __len__(self) -> int:
        return self.size()
