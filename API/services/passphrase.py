"""
Human-readable random passphrases ("tiger+maple+orbit+delta+piano").
"""

import secrets

WORDS = (
    "acorn", "amber", "anchor", "apple", "arrow", "aspen", "atlas", "autumn",
    "badge", "bamboo", "banjo", "basil", "beacon", "berry", "birch", "bison",
    "blossom", "breeze", "brick", "bridge", "brook", "cabin", "cactus", "camel",
    "candle", "canyon", "cedar", "cello", "chalk", "cherry", "cinder", "citrus",
    "clover", "cobalt", "comet", "coral", "cotton", "crane", "crystal", "daisy",
    "delta", "desert", "dolphin", "dune", "eagle", "ember", "falcon", "fern",
    "fiddle", "flint", "forest", "fossil", "galaxy", "garden", "ginger", "glacier",
    "granite", "harbor", "hazel", "heron", "honey", "island", "ivory", "jasmine",
    "jungle", "kettle", "kiwi", "lagoon", "lantern", "lemon", "lily", "lotus",
    "maple", "marble", "meadow", "meteor", "mint", "moss", "nectar", "nutmeg",
    "oasis", "ocean", "olive", "orbit", "orchid", "otter", "panda", "pepper",
    "piano", "pebble", "pine", "planet", "plum", "prairie", "quartz", "quill",
    "raven", "reef", "river", "robin", "saffron", "sage", "salmon", "sequoia",
    "shell", "sierra", "silver", "sparrow", "spruce", "stone", "summit", "sunset",
    "thistle", "thunder", "tiger", "topaz", "tulip", "tundra", "valley", "velvet",
    "violet", "walnut", "willow", "winter", "yarrow", "zephyr",
)


def generate_passphrase(words: int = 5, separator: str = "+") -> str:
    return separator.join(secrets.choice(WORDS) for _ in range(words))
