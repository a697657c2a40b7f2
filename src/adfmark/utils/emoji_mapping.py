EMOJI_BY_SHORTNAME: dict[str, str] = {
    'grinning': '😀',
    'smiley': '😃',
    'smile': '😄',
    'grin': '😁',
    'laughing': '😆',
    'sweat_smile': '😅',
    'joy': '😂',
    'wink': '😉',
    'blush': '😊',
    'innocent': '😇',
    'slightly_smiling_face': '🙂',
    'upside_down_face': '🙃',
    'heart_eyes': '😍',
    'thinking': '🤔',
    'neutral_face': '😐',
    'confused': '😕',
    'cry': '😢',
    'sob': '😭',
    'angry': '😠',
    'scream': '😱',
    'sunglasses': '😎',
    'star': '⭐',
    'sparkles': '✨',
    'thumbsup': '👍',
    '+1': '👍',
    'thumbsdown': '👎',
    '-1': '👎',
    'ok_hand': '👌',
    'wave': '👋',
    'pray': '🙏',
    'clapping_hands': '👏',
    'clap': '👏',
    'muscle': '💪',
    'handshake': '🤝',
    'eyes': '👀',
    'heart': '❤️',
    'broken_heart': '💔',
    'fire': '🔥',
    'rocket': '🚀',
    'tada': '🎉',
    'trophy': '🏆',
    'warning': '⚠️',
    'x': '❌',
    'white_check_mark': '✅',
    'heavy_check_mark': '✔️',
    'question': '❓',
    'exclamation': '❗',
    'bulb': '💡',
    'memo': '📝',
    'calendar': '📅',
    'pushpin': '📌',
    'link': '🔗',
    'lock': '🔒',
    'key': '🔑',
    'bug': '🐛',
    'gear': '⚙️',
    'hammer': '🔨',
    'wrench': '🔧',
    'zap': '⚡',
    'sunny': '☀️',
    'cloud': '☁️',
    'umbrella': '☔',
    'snowflake': '❄️',
    'coffee': '☕',
    'pizza': '🍕',
    'hamburger': '🍔',
    'cake': '🍰',
    'beer': '🍺',
    'soccer': '⚽',
    'basketball': '🏀',
    '100': '💯',
}
"""Unicode emoji for the shortnames most commonly found in Atlassian documents."""


def get_emoji(short_name: str) -> str | None:
    """Returns the unicode emoji for `short_name`, with or without surrounding colons."""
    return EMOJI_BY_SHORTNAME.get(short_name.strip(':'))


def is_known_shortname(short_name: str) -> bool:
    return short_name.strip(':') in EMOJI_BY_SHORTNAME
