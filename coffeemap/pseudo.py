"""
Pseudo-compilation: a regex translation of dialect source into roughly
equivalent generated text, without a source map.

Only used so that the language service has something to work with when no
real compilation succeeded, and for a single fake line put back into the
generated text. Very limited. Transforms keep line lengths where they can.
"""

import re


RECEIVER_KEYWORD = '@'
RECEIVER_EXPANSION = 'this.'
DECLARATION_PREFIX = 'let '

# `x (a) => a.` -> `x((a) => a.   )`, so the callback is seen as an argument.
# The spaces keep the mappings of the following columns sane.
_CALLBACK_PARENS = re.compile(r' (\(.+)$', re.M)
# `a b` -> `a(b   )`
_CALL_PARENS = re.compile(r'^(.*)([a-zA-Z0-9_$\])]) ([a-zA-Z0-9_$@[{"\'].*$)', re.M)
# `x(a: b` -> `x({a:b`
_INLINE_OBJECT = re.compile(r'([^\s{][ (])([a-zA-Z_$][a-zA-Z0-9_$]* ?:) ', re.M)
# words the target language cannot make sense of at all; `&&` works in their place
_KEYWORDS = re.compile(r'\b(unless|not|and|is|isnt|then)\b', re.M)
_ASSIGNMENT = re.compile(r'^[\t ]*[a-zA-Z0-9_$]+[\t ]*=(?:[^=]|$)', re.M)
_BLOCK_COMMENT = re.compile(r'(^|[^\n#])###($|[^\n#])', re.M)
_IMPORT_LINE = re.compile(r'^\s*(import|require)')


def _call_parens(match: re.Match) -> str:
    line = match.group(0)
    if line.startswith('import ') or 'require(' in line:
        return line
    return f"{match.group(1)}{match.group(2)}({match.group(3)}   )"


def _translate_line(line: str) -> str:
    if _IMPORT_LINE.match(line):
        return line
    # string interpolation via template literals
    return line.replace('"', '`').replace('#{', '${')


def pseudo_compile(source: str) -> str:
    """Translate dialect source to generated text using regexes only"""
    text = source.replace(RECEIVER_KEYWORD, RECEIVER_EXPANSION)
    text = _CALLBACK_PARENS.sub(r'(\1   )', text)
    text = _CALL_PARENS.sub(_call_parens, text)
    text = _INLINE_OBJECT.sub(r'\1{\2', text)
    text = _KEYWORDS.sub(lambda m: '&&'.ljust(len(m.group(1))), text)
    # every assignment needs a declaration
    text = _ASSIGNMENT.sub(lambda m: DECLARATION_PREFIX + m.group(0), text)
    text = _BLOCK_COMMENT.sub(r'\1/*\2', text)
    text = '\n'.join(_translate_line(line) for line in text.split('\n'))
    # `x.| # comment` would look like a class property otherwise
    return text.replace(' #', '//')


def receiver_expansion_before(line: str, character: int) -> int:
    """Columns a pseudo-compiled line grew by before ``character``
    through receiver keyword expansion"""
    count = line[:character].count(RECEIVER_KEYWORD)
    return count * (len(RECEIVER_EXPANSION) - len(RECEIVER_KEYWORD))
