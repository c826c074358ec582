#!/usr/bin/env python3
"""
Drive one scripted participant through a running survey backend.

The participant gives consent, walks to the chat page, opens the chat, sends the given
messages, continues, answers the likert questions and submits, all through the same
SurveyClient a real participant session uses (headless view, simulated history).

    python -m survey_bot.simulate --base-url http://127.0.0.1:3000 \
        --message "Hello" --message "What can you do?" --answer satisfaction=4
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Dict, List, Optional

from .client import HeadlessView, HttpSurveyGateway, InMemoryBrowserHistory, SurveyClient
from .client.gateway import GatewayError
from .config import SurveySettings, get_config
from .session_store import MemorySessionStorage, RedisSessionStorage, SessionStorage
from .utils.scheduler import LoopScheduler
from .utils.smart_logger import LogLevel, configure_logging

log = logging.getLogger("survey_bot.simulate")


def _parse_answers(pairs: List[str], questions: List[str]) -> Dict[str, str]:
    answers: Dict[str, str] = {}
    for pair in pairs:
        question, sep, value = pair.partition("=")
        if not sep or question not in questions:
            raise SystemExit(f"--answer expects one of {questions} as question=value, got {pair!r}")
        answers[question] = value
    return answers


def _step(client: SurveyClient, history: InMemoryBrowserHistory, action: str) -> bool:
    moved = client.next() if action == "next" else client.back()
    history.flush()
    log.info(f"SIM_STEP | action={action} | moved={moved} | page={client.current_page}")
    return moved


async def run(args: argparse.Namespace, storage: Optional[SessionStorage] = None) -> int:
    cfg = get_config()
    settings = SurveySettings.from_config(cfg)
    answers = _parse_answers(args.answer, settings.likert_questions)

    if storage is None:
        storage = RedisSessionStorage.from_config(cfg, args.session_id) if args.session_id else MemorySessionStorage()

    view = HeadlessView()
    history = InMemoryBrowserHistory()
    client = SurveyClient(
        HttpSurveyGateway(args.base_url, timeout=args.timeout),
        storage,
        view,
        history,
        LoopScheduler(),
        settings,
    )

    try:
        await client.load()
    except GatewayError as e:
        log.error(f"SIM_LOAD_FAILED | error={e}")
        return 2
    history.flush()
    client.conversation.start_polling()

    if args.consent:
        client.set_consent(True)
    while client.current_page < settings.chatbot_page:
        if not _step(client, history, "next"):
            log.error(f"SIM_BLOCKED | page={client.current_page} | consent={view.consent_checked()}")
            client.conversation.close()
            return 1

    client.open_chat()
    await asyncio.sleep((settings.initial_bot_message_delay_ms + 200) / 1000)

    for text in args.message:
        try:
            await client.send_message(text)
        except GatewayError as e:
            log.error(f"SIM_SEND_FAILED | text={text!r} | error={e}")
            continue
        await asyncio.sleep(args.reply_wait)

    if not client.continue_survey():
        client.close_chat()
        _step(client, history, "next")

    for question, value in answers.items():
        client.select_answer(question, value)
    while client.current_page < settings.total_pages - 1:
        if not _step(client, history, "next"):
            break

    submitted = await client.submit()
    history.flush()
    client.conversation.close()

    print("-" * 60)
    print(f"Participant:  {client.who}")
    print(f"Submitted:    {submitted}")
    print(f"Final page:   {view.active_page}")
    print("Transcript:")
    for text, author in view.messages:
        print(f"  [{author.value}] {text}")
    if view.alerts:
        print(f"Alerts:       {view.alerts}")
    print("-" * 60)
    return 0 if submitted else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a scripted participant against a survey backend")
    parser.add_argument("--base-url", default="http://127.0.0.1:3000", help="Survey backend URL")
    parser.add_argument("--message", action="append", default=[], help="Chat message to send (repeatable)")
    parser.add_argument("--answer", action="append", default=[], help="question=value (repeatable)")
    parser.add_argument("--no-consent", dest="consent", action="store_false", help="Do not tick the consent box")
    parser.add_argument("--session-id", default=None, help="Keep session storage in Redis under this id")
    parser.add_argument("--reply-wait", type=float, default=3.0, help="Seconds to wait for a reply after each message")
    parser.add_argument("--timeout", type=float, default=10.0, help="HTTP timeout in seconds")
    parser.add_argument("--verbose", action="store_true")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(
        level=LogLevel.DEBUG if args.verbose else LogLevel.STANDARD,
        format_string="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
