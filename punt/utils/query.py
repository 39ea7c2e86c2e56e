"""検索クエリの補助関数"""

LIKE_ESCAPE = "\\"

# 検索語はこの長さで切り詰める
MAX_SEARCH_LENGTH = 200


def escape_like(value: str) -> str:
    """
    LIKE/ILIKE のワイルドカードをエスケープする。

    `escape=LIKE_ESCAPE` と組み合わせて使うこと。
    """
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )


def contains_pattern(query: str) -> str:
    """部分一致用のパターン。長すぎる検索語は切り詰める"""
    return f"%{escape_like(query[:MAX_SEARCH_LENGTH])}%"
