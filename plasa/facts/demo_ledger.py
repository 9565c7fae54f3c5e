"""
A small, fully populated in-memory ledger.

One Plasa with one space, its points, a Fixed and an Open question, and
one stamp of each variant, committed over four anchors:

    height 1 @ GENESIS      entities created, balances alice 500 / bob 300 / carol 200
    height 2 @ FOLLOW_AT    alice follows (FollowerSince stamp), ballots cast
    height 3 @ AFTER_CLOSE  alice's balance grows to 900 after the Fixed deadline
    height 4 @ NOW          alice links a username

Used for local demos and as the shared fixture of the test suite.
"""
from plasa.data_models.fact_schemas import EntityKind

from .base import account_field
from .memory_source import InMemoryFactSource

GENESIS = 1_625_000_000
KICKOFF = 1_625_050_000
FOLLOW_AT = 1_625_097_600
FIXED_DEADLINE = 1_625_150_000
AFTER_CLOSE = 1_625_160_000
NOW = 1_625_184_000
OPEN_DEADLINE = 1_626_000_000

PLASA = "0x9a5a000000000000000000000000000000000001"
SPACE = "0x5ace000000000000000000000000000000000001"
POINTS = "0x9011000000000000000000000000000000000001"
FIXED_QUESTION = "0xf1ed000000000000000000000000000000000001"
OPEN_QUESTION = "0x09e0000000000000000000000000000000000001"
OWNERSHIP_STAMP = "0xa0a0000000000000000000000000000000000001"
FOLLOWER_STAMP = "0xf0f0000000000000000000000000000000000001"

ALICE = "0xa11ce00000000000000000000000000000000001"
BOB = "0xb0b0000000000000000000000000000000000001"
CAROL = "0xca20100000000000000000000000000000000001"
DAVE = "0xda7e000000000000000000000000000000000001"


def _genesis_writes() -> dict:
    plasa, space, points = EntityKind.PLASA, EntityKind.SPACE, EntityKind.POINTS
    question, stamp = EntityKind.QUESTION, EntityKind.STAMP
    return {
        (plasa, PLASA, "data"): {"contractAddress": PLASA, "chainId": 8453, "version": "1.0.0"},
        (plasa, PLASA, "spaces"): [SPACE],
        (plasa, PLASA, "stamps"): [OWNERSHIP_STAMP, FOLLOWER_STAMP],

        (space, SPACE, "data"): {
            "contractAddress": SPACE,
            "name": "Plasa DAO",
            "description": "Community governance",
            "imageUrl": "https://plasa.example/space.png",
            "creationTimestamp": GENESIS,
        },
        (space, SPACE, "points"): POINTS,
        (space, SPACE, "questions"): [FIXED_QUESTION, OPEN_QUESTION],
        (space, SPACE, "stamps"): [{"stamp": FOLLOWER_STAMP, "multiplier": 2}],
        (space, SPACE, account_field("role", ALICE)): "superAdmin",
        (space, SPACE, account_field("role", BOB)): "mod",
        (space, SPACE, account_field("role", DAVE)): "admin",
        (space, SPACE, account_field("overrides", CAROL)): {"CreateOpenQuestion": True},

        (points, POINTS, "data"): {"contractAddress": POINTS, "name": "Plasa Points", "symbol": "PLP"},
        (points, POINTS, "totalSupply"): 1000,
        (points, POINTS, "holders"): {ALICE: 500, BOB: 300, CAROL: 200},
        (points, POINTS, account_field("balance", ALICE)): 500,
        (points, POINTS, account_field("balance", BOB)): 300,
        (points, POINTS, account_field("balance", CAROL)): 200,

        (question, FIXED_QUESTION, "data"): {
            "contractAddress": FIXED_QUESTION,
            "questionType": "Fixed",
            "title": "Fund the grants round?",
            "description": "Allocate the Q3 grants budget",
            "tags": ["treasury", "grants"],
            "creator": ALICE,
            "kickoff": KICKOFF,
            "deadline": FIXED_DEADLINE,
        },
        (question, FIXED_QUESTION, "space"): SPACE,
        (question, FIXED_QUESTION, "options"): [
            {"title": "Yes", "description": "", "proposer": ALICE},
            {"title": "No", "description": "", "proposer": ALICE},
            {"title": "Abstain", "description": "", "proposer": ALICE},
        ],
        (question, FIXED_QUESTION, "voteCount"): 0,

        (question, OPEN_QUESTION, "data"): {
            "contractAddress": OPEN_QUESTION,
            "questionType": "Open",
            "title": "Name the next community call",
            "description": "",
            "tags": ["community"],
            "creator": BOB,
            "kickoff": KICKOFF,
            "deadline": OPEN_DEADLINE,
        },
        (question, OPEN_QUESTION, "space"): SPACE,
        (question, OPEN_QUESTION, "points"): POINTS,
        (question, OPEN_QUESTION, "options"): [
            {"title": "Plasa Hour", "description": "", "proposer": BOB},
            {"title": "Spam", "description": "", "proposer": CAROL, "vetoed": True},
        ],
        (question, OPEN_QUESTION, "voteCount"): 0,

        (stamp, OWNERSHIP_STAMP, "data"): {
            "contractAddress": OWNERSHIP_STAMP,
            "stampType": "AccountOwnership",
            "name": "X Account",
            "symbol": "XACC",
            "platform": "x.com",
            "totalSupply": 1,
        },
        (stamp, OWNERSHIP_STAMP, account_field("owner", BOB)): {
            "stampId": 1,
            "mintingTimestamp": GENESIS,
            "specific": {"username": "bob_on_x"},
        },
        (stamp, FOLLOWER_STAMP, "data"): {
            "contractAddress": FOLLOWER_STAMP,
            "stampType": "FollowerSince",
            "name": "Plasa Follower",
            "symbol": "FLW",
            "platform": "x.com",
            "totalSupply": 0,
            "specific": {"followedAccount": "plasa_dao", "space": SPACE},
        },
    }


def build_demo_ledger(retention=None) -> InMemoryFactSource:
    """Build the demo ledger; its latest anchor is (4, NOW)."""
    source = InMemoryFactSource(genesis_timestamp=GENESIS, retention=retention)
    source.commit(GENESIS, _genesis_writes())

    stamp, question = EntityKind.STAMP, EntityKind.QUESTION
    source.commit(FOLLOW_AT, {
        (stamp, FOLLOWER_STAMP, "data"): {
            "contractAddress": FOLLOWER_STAMP,
            "stampType": "FollowerSince",
            "name": "Plasa Follower",
            "symbol": "FLW",
            "platform": "x.com",
            "totalSupply": 1,
            "specific": {"followedAccount": "plasa_dao", "space": SPACE},
        },
        (stamp, FOLLOWER_STAMP, account_field("owner", ALICE)): {
            "stampId": 7,
            "mintingTimestamp": FOLLOW_AT,
            "specific": {"followTimestamp": FOLLOW_AT},
        },
        (question, FIXED_QUESTION, "ballots"): [
            {"voter": ALICE, "option": 0, "castAt": FOLLOW_AT},
            {"voter": BOB, "option": 1, "castAt": FOLLOW_AT},
        ],
        (question, FIXED_QUESTION, "voteCount"): 2,
        (question, OPEN_QUESTION, "ballots"): [
            {"voter": CAROL, "option": 0, "castAt": FOLLOW_AT},
        ],
        (question, OPEN_QUESTION, "voteCount"): 1,
    })

    points = EntityKind.POINTS
    source.commit(AFTER_CLOSE, {
        (points, POINTS, account_field("balance", ALICE)): 900,
        (points, POINTS, "totalSupply"): 1400,
        (points, POINTS, "holders"): {ALICE: 900, BOB: 300, CAROL: 200},
    })

    source.commit(NOW, {
        (EntityKind.ACCOUNT, ALICE, "username"): "alice.eth",
    })
    return source
