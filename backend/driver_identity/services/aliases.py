"""
Nickname table: formal first names and the informal variants drivers are
recorded under by the telemetry feeds. Keys and values are normalized
(lower-case) tokens.
"""
from typing import Dict, FrozenSet, Iterable, Tuple


NICKNAMES: Dict[str, Tuple[str, ...]] = {
    "michael": ("mike", "mick", "mickey"),
    "william": ("bill", "will", "billy", "willie"),
    "james": ("jim", "jimmy", "jamie"),
    "robert": ("rob", "bob", "bobby", "robbie"),
    "richard": ("rick", "dick", "ricky", "rich"),
    "david": ("dave", "davey"),
    "christopher": ("chris", "kris"),
    "matthew": ("matt", "matty"),
    "andrew": ("andy", "drew"),
    "joseph": ("joe", "joey"),
    "daniel": ("dan", "danny"),
    "anthony": ("tony",),
    "steven": ("steve", "stevie"),
    "stephen": ("steve", "stevie"),
    "kenneth": ("ken", "kenny"),
    "joshua": ("josh",),
    "kevin": ("kev",),
    "edward": ("ed", "eddie", "ted"),
    "ronald": ("ron", "ronnie"),
    "timothy": ("tim", "timmy"),
    "jeffrey": ("jeff",),
    "jacob": ("jake",),
    "nicholas": ("nick", "nicky"),
    "jonathan": ("jon", "johnny"),
    "benjamin": ("ben", "benny"),
    "samuel": ("sam", "sammy"),
    "gregory": ("greg",),
    "raymond": ("ray",),
    "alexander": ("alex", "al"),
    "patrick": ("pat", "paddy"),
    "john": ("jack", "johnny"),
    "gerald": ("jerry", "gerry"),
    "henry": ("hank", "harry"),
    "douglas": ("doug",),
    "nathan": ("nate",),
    "peter": ("pete",),
    "zachary": ("zach", "zack"),
    "walter": ("walt",),
    "harold": ("harry", "hal"),
    "arthur": ("art", "artie"),
    "lawrence": ("larry",),
    "albert": ("al", "bert"),
    "eugene": ("gene",),
    "louis": ("lou", "louie"),
    "philip": ("phil",),
    "thomas": ("tom", "tommy"),
    "frederick": ("fred", "freddie"),
    "bradley": ("brad",),
    "cameron": ("cam",),
}


def _build_pairs() -> FrozenSet[Tuple[str, str]]:
    return frozenset(
        (formal, informal)
        for formal, informals in NICKNAMES.items()
        for informal in informals
    )


ALIAS_PAIRS = _build_pairs()


def are_aliases(a: str, b: str) -> bool:
    """True when one token is a nickname of the other, in either direction."""
    return (a, b) in ALIAS_PAIRS or (b, a) in ALIAS_PAIRS


def has_alias_link(tokens_a: Iterable[str], tokens_b: Iterable[str]) -> bool:
    """
    True when a formal name in one token list has an informal variant in the
    other. Checked both ways: "Mike Jones" links to "Michael Jones" and
    vice versa.
    """
    set_b = set(tokens_b)
    return any(are_aliases(token_a, token_b) for token_a in set(tokens_a) for token_b in set_b)
