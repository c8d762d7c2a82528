"""ABI lookup for runtime releases.

Native addons are compiled against a module ABI number that changes with
the runtime's embedded engine. Each row is a release at which the ABI
is known; any later release shares the ABI of the newest row at or below
it.
"""

from typing import List, Optional, Tuple

# (first release, ABI), ascending
ELECTRON_ABI_TABLE: List[Tuple[str, str]] = [
    ("0.30.0", "44"),
    ("0.31.0", "45"),
    ("0.33.0", "46"),
    ("0.36.0", "47"),
    ("1.1.0", "48"),
    ("1.3.0", "49"),
    ("1.4.0", "50"),
    ("1.5.0", "51"),
    ("1.6.0", "53"),
    ("1.7.0", "54"),
    ("1.8.0", "57"),
    ("2.0.0", "57"),
    ("3.0.0", "64"),
    ("4.0.4", "69"),
    ("5.0.0", "70"),
    ("6.0.0", "73"),
    ("7.0.0", "75"),
    ("8.0.0", "76"),
    ("9.0.0", "80"),
    ("10.0.0", "82"),
    ("11.0.0", "85"),
    ("12.0.0", "87"),
    ("13.0.0", "89"),
    ("14.0.0", "97"),
    ("15.0.0", "98"),
    ("16.0.0", "99"),
    ("17.0.0", "101"),
    ("18.0.0", "103"),
    ("19.0.0", "106"),
    ("20.0.0", "107"),
    ("21.0.0", "109"),
    ("22.0.0", "110"),
    ("23.0.0", "113"),
    ("24.0.0", "114"),
    ("25.0.0", "116"),
    ("27.0.0", "118"),
    ("28.0.0", "119"),
    ("29.0.0", "121"),
    ("30.0.0", "123"),
    ("31.0.0", "125"),
    ("32.0.0", "128"),
    ("33.0.0", "130"),
    ("34.0.0", "132"),
    ("35.0.0", "133"),
    ("36.0.0", "135"),
    ("37.0.0", "136"),
    ("38.0.0", "139"),
]


def version_tuple(version: str) -> Tuple[int, int, int]:
    """Split a 'major.minor.patch[-tag]' string into an integer triple."""
    core = version.split("-", 1)[0].split("+", 1)[0]
    major, minor, patch = core.split(".")
    return int(major), int(minor), int(patch)


def lookup_abi(version: str) -> Optional[str]:
    """Return the ABI for a runtime version, or None if it predates the table.

    Args:
        version: Normalized runtime version ('major.minor.patch')

    Returns:
        ABI identifier string, or None
    """
    target = version_tuple(version)
    abi = None
    for release, release_abi in ELECTRON_ABI_TABLE:
        if version_tuple(release) <= target:
            abi = release_abi
        else:
            break
    return abi
