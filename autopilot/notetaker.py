"""Note-taker role: keeps durable facts seen on screen (codes, names, prices)."""

from autopilot.info_pool import InfoPool
from autopilot.sections import extract_section


def get_prompt(info_pool: InfoPool) -> str:
    return (
        "You are a helpful AI assistant for operating an Android phone. "
        "Keep track of content that will be needed later to complete the user's request.\n\n"
        f"### User Request ###\n{info_pool.instruction}\n\n"
        f"### Overall Plan ###\n{info_pool.plan}\n\n"
        f"### Progress Status ###\n{info_pool.progress_status or 'No progress yet.'}\n\n"
        "### Existing Important Notes ###\n"
        f"{info_pool.important_notes or 'No important notes recorded.'}\n\n"
        "---\n"
        "Look at the attached screenshot. Rewrite the notes, keeping existing facts that "
        "are still relevant and adding new ones from the screen. Do not record "
        "information unrelated to the request.\n\n"
        "Reply in exactly this format:\n"
        "### Important Notes ###\n"
        "The updated notes.\n"
    )


def parse_response(response: str) -> str:
    notes = extract_section(response, "Important Notes")
    return notes or response.strip()
