from __future__ import annotations

import pytest

from survey_bot.simulate import _parse_answers, build_parser

QUESTIONS = ["gender", "experience", "satisfaction"]


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.consent is True
    assert args.message == [] and args.answer == []


def test_parser_collects_repeated_flags():
    args = build_parser().parse_args(["--message", "Hello", "--message", "Bye", "--no-consent"])
    assert args.message == ["Hello", "Bye"]
    assert args.consent is False


def test_answers_are_parsed():
    assert _parse_answers(["satisfaction=4", "gender=female"], QUESTIONS) == {"satisfaction": "4", "gender": "female"}


@pytest.mark.parametrize("pair", ["colour=blue", "satisfaction"])
def test_bad_answers_exit(pair):
    with pytest.raises(SystemExit):
        _parse_answers([pair], QUESTIONS)
