"""
Numbering Engine

Question numbers are stable, sparse identifiers scoped to a topic inside a
booklet. Passes here only ever fill numbers that were never assigned
(unset, zero or negative); numbered questions are never changed, so
references such as assignment ranges survive edits elsewhere in the booklet.

Gaps left by deletions or topic moves are kept, and new numbers always
continue after the highest number already used in the topic.
"""

from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from booklet_library.database.schemas import Booklet, Question
from booklet_library.utils import next_stamp

DEFAULT_TOPIC = "__default__"


def topic_key(topic: Optional[str]) -> str:
    """Bucket for a question topic; blank topics share the default bucket."""
    topic = (topic or "").strip()
    return topic or DEFAULT_TOPIC


def _max_number(questions: Iterable[Question]) -> int:
    return max((q.number for q in questions if q.number and q.number > 0), default=0)


def group_by_topic(booklet: Booklet) -> Dict[str, List[Question]]:
    groups: Dict[str, List[Question]] = OrderedDict()
    for q in booklet.questions:
        groups.setdefault(topic_key(q.topic), []).append(q)
    return groups


def next_number(booklet: Booklet, topic: Optional[str]) -> int:
    """Next free number in a topic: one after the highest assigned number."""
    key = topic_key(topic)
    return _max_number(q for q in booklet.questions if topic_key(q.topic) == key) + 1


def renumber(booklet: Booklet, stamp: bool = True) -> Booklet:
    """
    Fill missing question numbers per topic, deterministically.

    Within each topic the questions are walked in creation order and every
    unnumbered one receives existing_max + 1, existing_max + 2, ...
    Mutates the booklet in place and stamps updated_at unless stamp=False.
    """
    for questions in group_by_topic(booklet).values():
        # sorted() is stable, so equal timestamps keep their booklet order
        ordered = sorted(questions, key=lambda q: q.created_at or 0)
        nxt = _max_number(ordered) + 1
        for q in ordered:
            if not q.number or q.number <= 0:
                q.number = nxt
                nxt += 1
    if stamp:
        booklet.updated_at = next_stamp(booklet.updated_at)
    return booklet


def assign_batch(booklet: Booklet, topic: Optional[str], questions: List[Question]) -> List[Question]:
    """
    Append a batch of new questions to one topic.

    The topic maximum is computed once and the batch is numbered in input
    order, overriding whatever numbers the new questions carried.
    """
    topic = (topic or "").strip() or booklet.topic
    nxt = next_number(booklet, topic)
    for q in questions:
        q.topic = topic
        q.number = nxt
        nxt += 1
        booklet.questions.append(q)
    booklet.updated_at = next_stamp(booklet.updated_at)
    return questions


def move_to_topic(booklet: Booklet, question: Question, topic: str) -> Question:
    """
    Move a question to another topic, taking the next number there.
    The slot it leaves in the source topic is not compacted.
    """
    if topic_key(topic) == topic_key(question.topic):
        return question
    number = next_number(booklet, topic)
    question.topic = topic
    question.number = number
    return question
