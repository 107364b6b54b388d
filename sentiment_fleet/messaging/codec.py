"""
Wire format for job and result messages.

Jobs travel as ``jobId|sourceLocator`` and results as
``jobId|sentimentScore|entities|sourceText`` where ``entities`` is rendered as
``[word1:LABEL1, word2:LABEL2]``.

Separator characters inside a field are escaped with a backslash, so a field
containing ``|`` (or ``\\``) still decodes back to the original value. Inside
the entities field each word also has ``,`` escaped. Values without any of
these characters encode exactly like the bare delimited format.
"""
import re

from sentiment_fleet.common.exceptions import PoisonMessageError
from sentiment_fleet.messaging.models import Entity, EntityLabel, Job, Result

SEPARATOR = '|'
ESCAPE = '\\'
ENTITY_SEPARATOR = ','
ENTITY_JOINER = ', '
LABEL_SEPARATOR = ':'

JOB_FIELD_COUNT = 2
RESULT_FIELD_COUNT = 4

# Characters in fetched text that would break a line-oriented consumer
_SOURCE_TEXT_CONFLICTS = re.compile(r'[|\r\n\t]+')

# Scores exactly as encode_result writes them
_SCORE = re.compile(r'-?[0-9]+')


def escape_field(value, specials=(SEPARATOR,)):
    """Prefix the escape character to itself and to every special character."""
    escaped = []
    for char in value:
        if char == ESCAPE or char in specials:
            escaped.append(ESCAPE)
        escaped.append(char)
    return ''.join(escaped)


def split_escaped(text, separator=SEPARATOR):
    """Split on unescaped separators, removing one level of escaping.

    Raises:
        PoisonMessageError: If the text ends with a dangling escape character
    """
    fields = []
    current = []
    escaped = False
    for char in text:
        if escaped:
            current.append(char)
            escaped = False
        elif char == ESCAPE:
            escaped = True
        elif char == separator:
            fields.append(''.join(current))
            current = []
        else:
            current.append(char)
    if escaped:
        raise PoisonMessageError("Dangling escape character", payload=text)
    fields.append(''.join(current))
    return fields


def sanitize_source_text(text):
    """Replace pipe, newline and tab runs with a single space."""
    if not text:
        return ''
    return _SOURCE_TEXT_CONFLICTS.sub(' ', text)


def _join(fields):
    return SEPARATOR.join(escape_field(value) for value in fields)


def _split_record(payload, expected, kind):
    if payload is None:
        raise PoisonMessageError(f"Empty {kind} payload", payload=payload)
    if isinstance(payload, bytes):
        try:
            payload = payload.decode('utf-8')
        except UnicodeDecodeError:
            raise PoisonMessageError(f"{kind} payload is not valid UTF-8", payload=payload)
    fields = split_escaped(payload)
    if len(fields) != expected:
        raise PoisonMessageError(
            f"Expected {expected} fields in {kind} payload, got {len(fields)}",
            payload=payload,
        )
    return fields


def encode_job(job):
    """Render a Job as a queue message body.

    Raises:
        ValueError: If the job id or the locator is empty
    """
    if not job.job_id:
        raise ValueError("Job id cannot be empty")
    if not job.source_locator:
        raise ValueError("Job source locator cannot be empty")
    return _join([job.job_id, job.source_locator])


def decode_job(payload):
    """Parse a queue message body into a Job.

    Raises:
        PoisonMessageError: On a field-count mismatch or an empty field
    """
    job_id, source_locator = _split_record(payload, JOB_FIELD_COUNT, 'job')
    if not job_id:
        raise PoisonMessageError("Job id is empty", payload=payload)
    if not source_locator:
        raise PoisonMessageError("Job source locator is empty", payload=payload)
    return Job(job_id=job_id, source_locator=source_locator)


def encode_entities(entities):
    """Render entities as ``[word:LABEL, ...]``."""
    items = []
    for entity in entities:
        word = escape_field(entity.word, specials=(ENTITY_SEPARATOR,))
        items.append(f"{word}{LABEL_SEPARATOR}{EntityLabel(entity.label).value}")
    return '[' + ENTITY_JOINER.join(items) + ']'


def decode_entities(text):
    """Parse the bracketed entity list back into Entity records.

    Raises:
        PoisonMessageError: If brackets, labels or separators are malformed
    """
    if len(text) < 2 or not (text.startswith('[') and text.endswith(']')):
        raise PoisonMessageError(f"Entities field is not bracketed: {text!r}", payload=text)
    inner = text[1:-1]
    if not inner:
        return ()

    entities = []
    for index, item in enumerate(split_escaped(inner, ENTITY_SEPARATOR)):
        if index > 0 and item.startswith(' '):
            item = item[1:]
        word, sep, label = item.rpartition(LABEL_SEPARATOR)
        if not sep or not word:
            raise PoisonMessageError(f"Malformed entity: {item!r}", payload=text)
        try:
            entities.append(Entity(word=word, label=EntityLabel(label)))
        except ValueError:
            raise PoisonMessageError(f"Unknown entity label: {label!r}", payload=text)
    return tuple(entities)


def encode_result(result):
    """Render a Result as a queue message body.

    Raises:
        ValueError: If the job id is empty
    """
    if not result.job_id:
        raise ValueError("Result job id cannot be empty")
    return _join([
        result.job_id,
        str(int(result.sentiment_score)),
        encode_entities(result.entities),
        sanitize_source_text(result.source_text),
    ])


def decode_result(payload):
    """Parse a queue message body into a Result.

    Raises:
        PoisonMessageError: On a field-count mismatch, an empty job id, a
            non-integer score or a malformed entity list
    """
    job_id, score, entities, source_text = _split_record(payload, RESULT_FIELD_COUNT, 'result')
    if not job_id:
        raise PoisonMessageError("Result job id is empty", payload=payload)
    if not _SCORE.fullmatch(score):
        raise PoisonMessageError(f"Sentiment score is not an integer: {score!r}", payload=payload)
    sentiment_score = int(score)
    return Result(
        job_id=job_id,
        sentiment_score=sentiment_score,
        entities=decode_entities(entities),
        source_text=source_text,
    )
