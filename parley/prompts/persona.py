from __future__ import annotations

from textwrap import dedent

PLAIN = "plain"
STRUCTURED = "structured"


def build_persona() -> str:
    return dedent(
        """
        You are a friendly, casual AI chatting via text message. Keep your responses
        conversational and natural, like you're texting a friend.
        """
    ).strip()


def build_grounding_section(block: str) -> str:
    return dedent(
        """
        You have access to these documents:

        {block}

        Answer questions using info from the documents naturally.
        Do not put citations or file names in your response; the documents
        used are shown to the user separately.
        """
    ).strip().format(block=block)


def build_plain_contract() -> str:
    return dedent(
        """
        CRITICAL FORMATTING RULES - MUST FOLLOW:
        - NEVER use asterisks (*) or double asterisks (**) for formatting
        - NEVER use bullet points or numbered lists
        - NEVER use markdown syntax of any kind
        - Write in plain text only, like a regular text message
        - If listing things, just use natural paragraphs with line breaks between items
        - Use contractions and natural language

        Example of good response:
        "Hey! So here's what I found...

        First thing is this really cool point about whatever.

        And lastly, this final bit wraps it all up nicely!"
        """
    ).strip()


def build_structured_contract() -> str:
    return dedent(
        """
        FORMATTING RULES:
        - Use short headings to separate topics
        - Use bold for key terms
        - Keep paragraphs brief and scannable
        """
    ).strip()


def build_formatting_contract(policy: str) -> str:
    if policy == STRUCTURED:
        return build_structured_contract()
    if policy == PLAIN:
        return build_plain_contract()
    raise ValueError(f"Unknown formatting policy: {policy!r}")
