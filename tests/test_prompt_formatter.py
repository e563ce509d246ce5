import pytest
from pydantic import ValidationError

from chat.models import PromptTemplate, count_positional_slots
from chat.prompts import DEFAULT_TEMPLATE_TEXT, format_prompt, format_turn


def test_slots_filled_in_order():
    template = PromptTemplate(text="[{}|{}|{}]", prose="P")
    assert format_prompt(template, "H", "M") == "[P|H|M]"


def test_default_template_first_turn():
    template = PromptTemplate(text=DEFAULT_TEMPLATE_TEXT)
    assert format_prompt(template, "", "hello") == "\n\nHuman: hello\n\nAssistant:"


def test_values_inserted_verbatim():
    template = PromptTemplate(text="{}{}{}")
    message = "curly {0} and {name} stay as typed"
    assert format_prompt(template, "", message) == message


def test_format_is_pure():
    template = PromptTemplate(text="{}:{}:{}", prose="x")
    first = format_prompt(template, "h", "m")
    assert format_prompt(template, "h", "m") == first


def test_numbered_slots_allowed():
    template = PromptTemplate(text="{2} {1} {0}", prose="a")
    assert format_prompt(template, "b", "c") == "c b a"


def test_format_turn_appends_exchange():
    assert format_turn("", "hello", "hi there") == "\n\nHuman: hello\n\nAssistant: hi there"
    prior = format_turn("", "hello", "hi there")
    assert format_turn(prior, "again", "sure").startswith(prior)


@pytest.mark.parametrize(
    "text",
    [
        "{}{}",
        "{}{}{}{}",
        "{name}{}{}",
        "{0}{}{}",
        "{0}{1}{3}",
        "no slots",
    ],
)
def test_invalid_templates_rejected(text):
    with pytest.raises(ValidationError):
        PromptTemplate(text=text)


def test_escaped_braces_are_not_slots():
    assert count_positional_slots("{{literal}} {} {} {}") == 3


def test_malformed_format_string_rejected():
    with pytest.raises(ValueError):
        count_positional_slots("{} {")
