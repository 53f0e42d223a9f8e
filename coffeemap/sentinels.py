"""
Sentinel markers that stand in for missing code.

Preprocessing and the compile ladder insert these markers so that the
dialect compiler accepts incomplete source and emits a mappable position
for it. Each sentinel knows what it turns into in compiled output and how
that residue is cleaned up. All markers are single BMP characters or ASCII
so that string indices and UTF-16 source-map columns agree on their lines.
"""

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import FrozenSet, List, Optional


class Stage(Enum):
    """Texts a sentinel may show up in"""
    PREPROCESSED = auto()   # source text handed to the compile ladder
    FAKE_LINE = auto()      # source text with the erroring line substituted
    COMPILED = auto()       # raw compiler output
    FINAL = auto()          # postprocessed output handed to the language service


@dataclass(frozen=True)
class Sentinel:
    name: str
    marker: str
    residue: re.Pattern
    stages: FrozenSet[Stage]
    # None deletes the residue; a string replaces it, padded to the residue's length
    replacement: Optional[str] = None
    pad: bool = False

    def clean(self, text: str) -> str:
        """Remove or replace every residue of this sentinel in ``text``"""
        if self.pad:
            fill = self.replacement or ''
            return self.residue.sub(lambda m: fill.ljust(len(m.group(0))), text)
        return self.residue.sub(self.replacement or '', text)

    def found_in(self, text: str) -> bool:
        return self.residue.search(text) is not None

    def allowed_in(self, stage: Stage) -> bool:
        return stage in self.stages


# Replaces an erroring line while the compile ladder looks for a fake line
# that compiles. Never survives the ladder.
PLACEHOLDER = Sentinel(
    name='fake-line placeholder',
    marker='ᛝ',
    residue=re.compile('ᛝ'),
    stages=frozenset({Stage.FAKE_LINE, Stage.COMPILED}),
)

# `a ` -> `a ↯:↯` and `{a, }` -> `{a,↯}`: keeps a position where a new object
# property can be typed. Blanked out with spaces to keep columns.
NEW_PROPERTY = Sentinel(
    name='new property',
    marker='↯',
    residue=re.compile('↯(: )?'),
    stages=frozenset({Stage.PREPROCESSED, Stage.FAKE_LINE, Stage.COMPILED}),
    replacement='',
    pad=True,
)

# Indented empty line -> `ᛟ:ᛟ`, otherwise the compiler drops the line and it
# cannot be mapped. Deleted after source-map repair.
EMPTY_LINE = Sentinel(
    name='empty line',
    marker='ᛟ:ᛟ',
    residue=re.compile('ᛟ: ?ᛟ,?'),
    stages=frozenset({Stage.PREPROCESSED, Stage.FAKE_LINE, Stage.COMPILED}),
)

# A lone `@` would not compile, `this.<marker>` does and evaluates to the
# same receiver once replaced.
RECEIVER = Sentinel(
    name='receiver',
    marker='this.__coffeemapAtSign',
    residue=re.compile(re.escape('this.__coffeemapAtSign')),
    stages=frozenset({Stage.PREPROCESSED, Stage.FAKE_LINE, Stage.COMPILED}),
    replacement='(this.valueOf(),this)',
    pad=True,
)

SENTINELS = (PLACEHOLDER, NEW_PROPERTY, EMPTY_LINE, RECEIVER)


def violations(text: str, stage: Stage) -> List[Sentinel]:
    """Sentinels present in ``text`` that must not appear at ``stage``"""
    return [s for s in SENTINELS if not s.allowed_in(stage) and s.found_in(text)]
