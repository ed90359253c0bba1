"""Romaji to hiragana transliteration for yomi.

Converts the pending romaji buffer into hiragana using a longest-match
table lookup. Whatever cannot (yet) be converted is handed back as the
remainder so the caller can keep it in the preedit buffer.

Example:
    >>> convert("kyouha")
    ('きょうは', '')
    >>> convert("kan")
    ('か', 'n')
"""

# Longest patterns first. Lookup is by exact key, the ordering only
# documents intent.
ROMAJI_TABLE: dict[str, str] = {
    # 4 characters
    "ltsu": "っ",
    "xtsu": "っ",
    # 3 characters
    "kya": "きゃ", "kyi": "きぃ", "kyu": "きゅ", "kye": "きぇ", "kyo": "きょ",
    "sha": "しゃ", "shi": "し", "shu": "しゅ", "she": "しぇ", "sho": "しょ",
    "sya": "しゃ", "syi": "しぃ", "syu": "しゅ", "sye": "しぇ", "syo": "しょ",
    "cha": "ちゃ", "chi": "ち", "chu": "ちゅ", "che": "ちぇ", "cho": "ちょ",
    "tya": "ちゃ", "tyi": "ちぃ", "tyu": "ちゅ", "tye": "ちぇ", "tyo": "ちょ",
    "tha": "てゃ", "thi": "てぃ", "thu": "てゅ", "the": "てぇ", "tho": "てょ",
    "tsu": "つ",
    "nya": "にゃ", "nyi": "にぃ", "nyu": "にゅ", "nye": "にぇ", "nyo": "にょ",
    "hya": "ひゃ", "hyi": "ひぃ", "hyu": "ひゅ", "hye": "ひぇ", "hyo": "ひょ",
    "mya": "みゃ", "myi": "みぃ", "myu": "みゅ", "mye": "みぇ", "myo": "みょ",
    "rya": "りゃ", "ryi": "りぃ", "ryu": "りゅ", "rye": "りぇ", "ryo": "りょ",
    "gya": "ぎゃ", "gyi": "ぎぃ", "gyu": "ぎゅ", "gye": "ぎぇ", "gyo": "ぎょ",
    "jya": "じゃ", "jyi": "じぃ", "jyu": "じゅ", "jye": "じぇ", "jyo": "じょ",
    "bya": "びゃ", "byi": "びぃ", "byu": "びゅ", "bye": "びぇ", "byo": "びょ",
    "pya": "ぴゃ", "pyi": "ぴぃ", "pyu": "ぴゅ", "pye": "ぴぇ", "pyo": "ぴょ",
    "xya": "ゃ", "xyu": "ゅ", "xyo": "ょ",
    "lya": "ゃ", "lyu": "ゅ", "lyo": "ょ",
    "xtu": "っ", "ltu": "っ",
    "xwa": "ゎ", "lwa": "ゎ",
    # 2 characters
    "ka": "か", "ki": "き", "ku": "く", "ke": "け", "ko": "こ",
    "sa": "さ", "si": "し", "su": "す", "se": "せ", "so": "そ",
    "ta": "た", "ti": "ち", "tu": "つ", "te": "て", "to": "と",
    "na": "な", "ni": "に", "nu": "ぬ", "ne": "ね", "no": "の",
    "ha": "は", "hi": "ひ", "hu": "ふ", "fu": "ふ", "he": "へ", "ho": "ほ",
    "ma": "ま", "mi": "み", "mu": "む", "me": "め", "mo": "も",
    "ya": "や", "yi": "い", "yu": "ゆ", "ye": "いぇ", "yo": "よ",
    "ra": "ら", "ri": "り", "ru": "る", "re": "れ", "ro": "ろ",
    "wa": "わ", "wi": "うぃ", "we": "うぇ", "wo": "を",
    "nn": "ん", "n'": "ん", "xn": "ん",
    "ga": "が", "gi": "ぎ", "gu": "ぐ", "ge": "げ", "go": "ご",
    "za": "ざ", "zi": "じ", "ji": "じ", "zu": "ず", "ze": "ぜ", "zo": "ぞ",
    "da": "だ", "di": "ぢ", "du": "づ", "de": "で", "do": "ど",
    "ba": "ば", "bi": "び", "bu": "ぶ", "be": "べ", "bo": "ぼ",
    "pa": "ぱ", "pi": "ぴ", "pu": "ぷ", "pe": "ぺ", "po": "ぽ",
    "ja": "じゃ", "ju": "じゅ", "je": "じぇ", "jo": "じょ",
    "fa": "ふぁ", "fi": "ふぃ", "fe": "ふぇ", "fo": "ふぉ",
    "va": "ゔぁ", "vi": "ゔぃ", "vu": "ゔ", "ve": "ゔぇ", "vo": "ゔぉ",
    "xa": "ぁ", "xi": "ぃ", "xu": "ぅ", "xe": "ぇ", "xo": "ぉ",
    "la": "ぁ", "li": "ぃ", "lu": "ぅ", "le": "ぇ", "lo": "ぉ",
    # 1 character
    "a": "あ", "i": "い", "u": "う", "e": "え", "o": "お",
    "-": "ー",
}

MAX_PATTERN_LENGTH = max(len(key) for key in ROMAJI_TABLE)

# Doubling one of these produces a small tsu ("kk" -> "っk")
SOKUON_CONSONANTS = frozenset("ksthmyrwgzdbpcfj")

# After a lone "n" these keep the syllable ambiguous
N_CONTINUATIONS = frozenset("aiueoyn")

SOKUON = "っ"
SYLLABIC_N = "ん"


def convert(romaji: str) -> tuple[str, str]:
    """Convert a romaji buffer into hiragana.

    Args:
        romaji: Pending romaji input (any case).

    Returns:
        ``(hiragana, remainder)`` where ``remainder`` is the unconsumed tail,
        preserved exactly as typed.
    """
    output: list[str] = []
    pos = 0
    length = len(romaji)

    while pos < length:
        current = romaji[pos].lower()

        if pos + 1 < length and current in SOKUON_CONSONANTS and romaji[pos + 1].lower() == current:
            output.append(SOKUON)
            pos += 1
            continue

        kana = None
        for size in range(min(MAX_PATTERN_LENGTH, length - pos), 0, -1):
            kana = ROMAJI_TABLE.get(romaji[pos:pos + size].lower())
            if kana is not None:
                output.append(kana)
                pos += size
                break
        if kana is not None:
            continue

        if current == "n":
            if pos + 1 == length or romaji[pos + 1].lower() in N_CONTINUATIONS:
                break
            output.append(SYLLABIC_N)
            pos += 1
            continue

        break

    return "".join(output), romaji[pos:]


def is_pending(remainder: str) -> bool:
    """Return True if ``remainder`` may still become kana with more input."""
    if not remainder:
        return False

    lower = remainder.lower()
    if any(key.startswith(lower) for key in ROMAJI_TABLE):
        return True

    return len(lower) == 1 and lower in SOKUON_CONSONANTS
