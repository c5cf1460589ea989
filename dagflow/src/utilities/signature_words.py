"""
Human-readable names for DAG signatures.

Each distinct DAG variant (by signature) gets a memorable word that is
unique within its naming scope (one application). The pick is derived from
the signature itself, so the same signature and the same set of taken names
always produce the same result.
"""
import re
from typing import AbstractSet, List

_WORDS: List[str] = [
    # Constellations & stars
    "andromeda", "orion", "cassiopeia", "lyra", "vega", "sirius", "polaris",
    "altair", "rigel", "deneb", "antares", "arcturus", "betelgeuse", "capella",
    "canopus", "procyon", "aldebaran", "spica", "regulus", "fomalhaut",
    "achernar", "bellatrix", "mintaka", "alnilam", "alnitak", "mizar",
    "alcor", "dubhe", "merak", "alioth",

    # Trees & plants
    "sequoia", "baobab", "cypress", "juniper", "cedar", "maple", "willow",
    "birch", "aspen", "magnolia", "acacia", "banyan", "redwood", "hemlock",
    "linden", "sycamore", "alder", "hazel", "laurel", "myrtle", "oleander",
    "wisteria", "jasmine", "orchid", "dahlia", "peony", "lotus", "iris",
    "azalea", "camellia",

    # Minerals & gems
    "obsidian", "quartz", "onyx", "jade", "topaz", "opal", "garnet",
    "zircon", "beryl", "pyrite", "agate", "jasper", "basalt", "granite",
    "marble", "slate", "feldspar", "mica", "cobalt", "titanium", "chromium",
    "rhodium", "iridium", "osmium", "bismuth", "galena", "calcite",
    "dolomite", "gypsum", "flint",

    # Mythical places
    "avalon", "olympus", "elysium", "arcadia", "valhalla", "asgard",
    "atlantis", "eldorado", "utopia", "shangri-la", "camelot", "hyperion",
    "lemuria", "midgard", "nirvana", "zion", "eden", "thule", "lyonesse",
    "ithaca", "colchis", "delphi", "knossos", "mycenae", "thebes",
    "carthage", "persepolis", "palmyra", "petra", "angkor",

    # Animals
    "phoenix", "griffin", "falcon", "osprey", "condor", "albatross",
    "peregrine", "kestrel", "merlin", "harrier", "heron", "crane",
    "pelican", "cormorant", "kingfisher", "nightingale", "skylark",
    "wren", "swift", "raven", "panther", "jaguar", "leopard", "lynx",
    "ocelot", "cheetah", "gazelle", "impala", "oryx", "ibex",

    # Ocean & water
    "nautilus", "triton", "nereid", "coral", "tempest", "tsunami",
    "monsoon", "maelstrom", "cascade", "torrent", "fjord", "lagoon",
    "atoll", "reef", "delta", "estuary", "rapids", "geyser", "glacier",
    "iceberg", "tundra", "permafrost", "aurora", "boreal", "solstice",
    "equinox", "zenith", "nadir", "meridian", "horizon",

    # Mountains & geography
    "summit", "pinnacle", "ridge", "plateau", "mesa", "canyon", "ravine",
    "caldera", "crater", "volcano", "fumarole", "obsidian", "basalt",
    "tectonic", "moraine", "cirque", "escarpment", "butte", "bluff",
    "promontory", "archipelago", "isthmus", "peninsula", "strait",
    "channel", "basin", "watershed", "tributary", "confluence", "headwater",

    # Weather & sky
    "nebula", "pulsar", "quasar", "nova", "cosmos", "stellar", "lunar",
    "solar", "astral", "celestial", "twilight", "dusk", "dawn", "daybreak",
    "nightfall", "starlight", "moonbeam", "sunburst", "rainbow", "prism",
    "spectrum", "halo", "corona", "nimbus", "cirrus", "stratus", "cumulus",
    "zephyr", "mistral", "sirocco",

    # Elements & materials
    "carbon", "silicon", "argon", "neon", "helium", "lithium", "sodium",
    "cesium", "strontium", "barium", "radium", "thorium", "uranium",
    "neptunium", "plutonium", "curium", "fermium", "einsteinium",
    "mendelevium", "nobelium", "lawrencium", "rutherford", "seaborg",
    "bohrium", "hassium", "meitnerium", "darmstadt", "roentgen",
    "copernicium", "flerovium",

    # Colors & light
    "crimson", "scarlet", "vermilion", "amber", "saffron", "ochre",
    "sienna", "umber", "cerulean", "azure", "cobalt", "indigo", "violet",
    "magenta", "cerise", "carmine", "burgundy", "maroon", "teal",
    "turquoise", "emerald", "viridian", "chartreuse", "olive", "khaki",
    "ivory", "pearl", "silver", "platinum", "bronze",

    # Music & sound
    "allegro", "adagio", "andante", "crescendo", "fortissimo", "pianissimo",
    "staccato", "legato", "vibrato", "tremolo", "cadenza", "fugue",
    "sonata", "prelude", "nocturne", "requiem", "serenade", "overture",
    "symphony", "concerto", "aria", "ballad", "etude", "rondo",
    "scherzo", "minuet", "bolero", "tango", "waltz", "mazurka",

    # Ancient & history
    "spartan", "athenian", "roman", "viking", "samurai", "centurion",
    "gladiator", "pharaoh", "sultan", "emperor", "monarch", "sentinel",
    "guardian", "herald", "vanguard", "pioneer", "voyager", "navigator",
    "explorer", "pathfinder", "trailblazer", "frontier", "outpost",
    "citadel", "fortress", "bastion", "rampart", "parapet", "battlement",
    "watchtower",

    # Abstract & qualities
    "apex", "vertex", "nexus", "cipher", "axiom", "theorem", "paradox",
    "enigma", "quantum", "vector", "matrix", "tensor", "scalar", "fractal",
    "helix", "spiral", "vortex", "flux", "pulse", "surge", "catalyst",
    "prism", "echo", "resonance", "harmony", "cadence", "rhythm",
    "tempo", "momentum", "velocity",

    # Nature & seasons
    "solstice", "equinox", "blossom", "harvest", "frost", "ember",
    "kindle", "spark", "blaze", "flame", "inferno", "pyre", "beacon",
    "lantern", "lighthouse", "compass", "anchor", "rudder", "helm",
    "keel", "mast", "bowsprit", "starboard", "portside", "leeward",
    "windward", "current", "drift", "voyage", "odyssey",
]

# Some words appear under more than one theme; keep first occurrence order
WORDS: List[str] = list(dict.fromkeys(_WORDS))
WORD_COUNT = len(WORDS)


def pick_signature_name(signature: str, used_names: AbstractSet[str]) -> str:
    """
    Pick a name for `signature` that is not in `used_names`.

    The first 8 hex chars of the signature seed a start index into the word
    list; the scan walks forward (wrapping) to the first free word. Once every
    word is taken, the seeded word gets a numeric suffix: word-2, word-3, ...
    """
    seed = int(signature[:8], 16)
    for offset in range(WORD_COUNT):
        word = WORDS[(seed + offset) % WORD_COUNT]
        if word not in used_names:
            return word

    base_word = WORDS[seed % WORD_COUNT]
    suffix = 2
    while f"{base_word}-{suffix}" in used_names:
        suffix += 1
    return f"{base_word}-{suffix}"


def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "style"


def pick_style_name(style_name: str, used_names: AbstractSet[str]) -> str:
    """
    Versioned name for a workflow generated in a given style.

    `used_names` holds the names already taken in the app; only
    `<slug>-v<N>` entries count toward the version. The result is
    `<slug>-v<N>` with N one past the highest version already used for
    this slug (v1 when there is none).
    """
    slug = _slugify(style_name)
    pattern = re.compile(rf"^{re.escape(slug)}-v(\d+)$")
    versions = [int(m.group(1)) for name in used_names if (m := pattern.match(name))]
    version = max(versions, default=0) + 1
    while f"{slug}-v{version}" in used_names:
        version += 1
    return f"{slug}-v{version}"
