import os

from openai import OpenAI, OpenAIError

from services.errors import ServiceUnavailable, UpstreamError

DEFAULT_MODEL = "gpt-4o-mini"
EMPTY_REPLY = "I'm sorry, I couldn't generate a response."
UNAVAILABLE_REPLY = "AI features are currently unavailable. Please configure your OpenAI API key."

SYSTEM_PROMPT = (
    "You are a helpful productivity and time management assistant. You help users "
    "organize their tasks, suggest time blocking strategies, and provide advice on "
    "maximizing productivity."
)


class AdvisorUnavailable(ServiceUnavailable):
    message = UNAVAILABLE_REPLY


class AdvisorUpstreamError(UpstreamError):
    message = "Failed to get AI response"


def get_openai_client() -> OpenAI:
    api_key = os.environ.get("OPENAI_API_KEY")
    if not api_key:
        raise AdvisorUnavailable()
    return OpenAI(api_key=api_key)


def call_chat_text(
    system_prompt,
    user_content,
    *,
    max_tokens=2048,
    temperature=0.3,
    logger=None,
):
    """Call OpenAI chat completion and return the response content (may be empty)."""
    client = get_openai_client()
    try:
        response = client.chat.completions.create(
            model=os.environ.get("OPENAI_MODEL", DEFAULT_MODEL),
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content
    except (OpenAIError, IndexError, AttributeError) as exc:
        if logger:
            logger.warning("OpenAI API error: %s", exc)
        raise AdvisorUpstreamError() from exc


def get_suggestion(message, context=None, logger=None):
    """Ask the advisor about free text; raises AdvisorUnavailable / AdvisorUpstreamError."""
    prompt = SYSTEM_PROMPT
    if context:
        prompt = f"{prompt} {context}"
    reply = call_chat_text(prompt, message, logger=logger)
    return reply or EMPTY_REPLY
