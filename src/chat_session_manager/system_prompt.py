CHAT_SYSTEM_PROMPT = """\
You are an AI assistant that helps people find information. \
Provide concise answers that are polite and professional. \
If you do not know an answer, reply with "I do not know the answer"."""

SUMMARIZE_SYSTEM_PROMPT = """\
Summarize this prompt in one or two words to use as a label in a button on a web page. \
Do not use any punctuation."""

SUMMARY_MAX_TOKENS = 20


def clean_summary(text: str) -> str:
    # Models sometimes wrap the label in quotes or end it with a period.
    return " ".join(text.split()).strip("\"'.")
