import json
import os
import re
from dataclasses import dataclass, field

import httpx
from openai import OpenAI

LOG_METRICS_TOOL_NAME = "logMetrics"
EMPTY_REPLY_TEXT = "Przepraszam, coś poszło nie tak. Spróbujmy jeszcze raz."

LOG_METRICS_TOOL = {
    "type": "function",
    "name": LOG_METRICS_TOOL_NAME,
    "description": "Zapisuje kluczowe metryki sukcesu użytkownika do bazy danych.",
    "parameters": {
        "type": "object",
        "properties": {
            "weight": {
                "type": "number",
                "description": "Waga użytkownika w kilogramach.",
            },
            "wellBeing": {
                "type": "number",
                "description": "Samopoczucie i poziom energii w skali 1-10.",
            },
            "sleepQuality": {
                "type": "number",
                "description": "Jakość snu w skali 1-10.",
            },
            "progressNote": {
                "type": "string",
                "description": 'Krótki wniosek lub opis stanu (np. "Stabilna adaptacja", "Możliwa retencja wody").',
            },
        },
        "required": ["weight", "wellBeing", "sleepQuality", "progressNote"],
    },
}

KETUS_SYSTEM_INSTRUCTION = """
Jesteś KETUŚ – strategiczny analityk keto, ekspert keto i biohackingu. Twoim zadaniem jest monitorowanie progresu użytkownika w sposób elastyczny i długofalowy.

CORE PHILOSOPHY:
- LONG-TERM OVER SHORT-TERM: Skupiasz się na trendach tygodniowych, a nie dziennych wahaniach.
- SUBSTANCE OVER DETAIL: Analizujesz co użytkownik zjadł, by dać mu radę, ale do bazy danych (poprzez logMetrics) wpisujesz tylko kluczowe metryki sukcesu.
- EVIDENCE BASED: Twoje porady muszą mieć fundament w fizjologii (insulina, ciało ketonowe, gospodarka mineralna).

LOGIC & DATA HANDLING:
1. ANALIZA POSIŁKÓW: Gdy użytkownik mówi o jedzeniu, oceń to pod kątem gęstości odżywczej i wpływu na ketozę. Daj krótką radę, ale NIE wywołuj logMetrics tylko dla jedzenia.
2. ZBIORNIKI DANYCH: Wywołuj funkcję 'logMetrics' tylko wtedy, gdy użytkownik poda dane o wadze, samopoczuciu lub śnie.
3. ELASTYCZNOŚĆ: Jeśli użytkownik miał "gorszy dzień", nie oceniaj. Wyjaśnij mechanizm biologiczny (np. skok dopaminy i insuliny) i pomóż wrócić na tory.

PERSONALIZACJA:
- Styl: Konkretny, kumpelski, bez owijania w bawełnę.
- Podejście: "Rozumiemy biochemię, więc nie walczymy z silną wolą, tylko optymalizujemy hormony".
- Motywacja: Opieraj ją na wynikach.

CONSTRAINTS:
- Nie spamuj prośbami o detale każdego posiłku.
- Promuj prawdziwe jedzenie (gęste odżywczo), ignoruj marketingowe produkty keto.
"""


@dataclass
class ChatReply:
    text: str
    metric_calls: list[dict] = field(default_factory=list)


def _extract_json_object(raw_text: str) -> dict:
    text = (raw_text or "").strip()
    if not text:
        return {}

    if text.startswith("```"):
        text = re.sub(r"^```[a-zA-Z0-9]*\s*", "", text)
        text = re.sub(r"\s*```$", "", text)

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    match = re.search(r"\{[\s\S]*\}", text)
    if not match:
        return {}
    try:
        parsed = json.loads(match.group(0))
        return parsed if isinstance(parsed, dict) else {}
    except json.JSONDecodeError:
        return {}


def _decode_arguments(raw_args) -> dict:
    if isinstance(raw_args, dict):
        return raw_args
    return _extract_json_object(raw_args if isinstance(raw_args, str) else "")


def build_client(api_key: str | None = None, timeout: float | None = None) -> OpenAI:
    api_key = api_key or os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY is not configured.")

    if timeout is None:
        try:
            timeout = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))
        except ValueError:
            timeout = 60.0
    return OpenAI(api_key=api_key, http_client=httpx.Client(timeout=timeout))


def history_to_turns(messages: list[dict]) -> list[dict]:
    """Convert stored chat messages to Responses API input turns."""
    turns = []
    for message in messages:
        content = message.get("content")
        if not content:
            continue
        role = "user" if message.get("role") == "user" else "assistant"
        turns.append({"role": role, "content": content})
    return turns


def parse_chat_response(response) -> ChatReply:
    text = (getattr(response, "output_text", None) or "").strip()
    metric_calls = []
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "function_call":
            continue
        if getattr(item, "name", None) != LOG_METRICS_TOOL_NAME:
            continue
        metric_calls.append(_decode_arguments(getattr(item, "arguments", None)))
    return ChatReply(text=text or EMPTY_REPLY_TEXT, metric_calls=metric_calls)


def chat_with_ketus(
    message: str,
    history: list[dict],
    client: OpenAI | None = None,
    model: str | None = None,
) -> ChatReply:
    if client is None:
        client = build_client()

    model = model or os.getenv("OPENAI_CHAT_MODEL", "gpt-4.1-mini")
    response = client.responses.create(
        model=model,
        instructions=KETUS_SYSTEM_INSTRUCTION,
        input=[*history, {"role": "user", "content": message}],
        tools=[LOG_METRICS_TOOL],
    )
    return parse_chat_response(response)
