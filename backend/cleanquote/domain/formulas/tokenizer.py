import re

from cleanquote.domain.errors import FormulaSyntaxError

THREE_CHAR_OPERATORS = ("===", "!==")
TWO_CHAR_OPERATORS = (">=", "<=", "&&", "||")
SINGLE_CHAR_OPERATORS = frozenset("+-*/()><?:!")
OPERATORS = frozenset(THREE_CHAR_OPERATORS + TWO_CHAR_OPERATORS) | SINGLE_CHAR_OPERATORS
QUOTES = frozenset("\"'")
ATTRIBUTES = frozenset({"value", "time", "min", "max"})
KEYWORDS = frozenset({"true", "false"})

IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)?")
NUMBER_RE = re.compile(r"(?:\d+(?:\.\d*)?|\.\d+)")
STRING_RE = re.compile(r"\"[^\"]*\"|'[^']*'")


def tokenize(source: str) -> list[str]:
    """Split formula text into tokens.

    Recognizes quoted strings first, then three, two and single character
    operators; whitespace separates tokens and everything else accumulates into
    identifier/number tokens. Raises FormulaSyntaxError on an unterminated string.
    """
    tokens: list[str] = []
    buffer: list[str] = []
    quote: str | None = None
    quote_start = 0
    index = 0
    length = len(source)

    def flush() -> None:
        if buffer:
            tokens.append("".join(buffer))
            buffer.clear()

    while index < length:
        char = source[index]
        if quote is not None:
            buffer.append(char)
            if char == quote:
                quote = None
                flush()
            index += 1
            continue
        if char in QUOTES:
            flush()
            quote = char
            quote_start = index
            buffer.append(char)
            index += 1
            continue
        three = source[index : index + 3]
        if three in THREE_CHAR_OPERATORS:
            flush()
            tokens.append(three)
            index += 3
            continue
        two = source[index : index + 2]
        if two in TWO_CHAR_OPERATORS:
            flush()
            tokens.append(two)
            index += 2
            continue
        if char in SINGLE_CHAR_OPERATORS:
            flush()
            tokens.append(char)
            index += 1
            continue
        if char.isspace():
            flush()
            index += 1
            continue
        buffer.append(char)
        index += 1

    if quote is not None:
        raise FormulaSyntaxError(
            detail=f"Unterminated string starting at offset {quote_start}",
            position=quote_start,
        )
    flush()
    return tokens


def is_identifier(token: str) -> bool:
    if not IDENTIFIER_RE.fullmatch(token):
        return False
    if "." in token:
        return token.split(".", 1)[1] in ATTRIBUTES
    return True


def is_number(token: str) -> bool:
    return bool(NUMBER_RE.fullmatch(token))


def is_string(token: str) -> bool:
    return bool(STRING_RE.fullmatch(token))


def is_valid_token(token: str) -> bool:
    return token in OPERATORS or is_number(token) or is_string(token) or is_identifier(token)


def check_tokens(tokens: list[str]) -> None:
    for position, token in enumerate(tokens):
        if not is_valid_token(token):
            raise FormulaSyntaxError(detail=f"Invalid token '{token}'", position=position)
