"""Static constants shared across modules."""

LANE_NAMES = {
    1: "Fast Track",
    2: "Standard RAG",
    3: "Reasoning Agent",
}

LANE_DESCRIPTIONS = {
    1: "Chit-chat and general questions answered without retrieval",
    2: "Knowledge-base questions answered by a single hybrid retrieval",
    3: "Multi-step questions answered with planning, retrieval and reasoning",
}

ESTIMATED_TIME = {
    "chat": "< 1s",
    "fast_rag": "3-5s",
    "reasoning": "15-60s",
}

INTENT_TO_LANE = {
    "chat": 1,
    "fast_rag": 2,
    "reasoning": 3,
}

LANE_TO_INTENT = {lane: intent for intent, lane in INTENT_TO_LANE.items()}

# Grader heuristic fallback confidence when model output is unparseable
HEURISTIC_GRADE_CONFIDENCE = 0.6

# Explicit compression keeps this many trailing messages
COMPRESS_MIN_MESSAGES = 6
COMPRESS_KEEP_MESSAGES = 4

MAX_REWRITE_KEYWORDS = 8
MAX_CLAIMS = 20
EVIDENCE_SNIPPET_CHARS = 1200

STOPWORDS = frozenset(
    {
        "a", "about", "above", "after", "again", "against", "all", "am", "an",
        "and", "any", "are", "as", "at", "be", "because", "been", "before",
        "being", "below", "between", "both", "but", "by", "can", "could", "did",
        "do", "does", "doing", "down", "during", "each", "few", "for", "from",
        "further", "had", "has", "have", "having", "he", "her", "here", "hers",
        "him", "his", "how", "if", "in", "into", "is", "it", "its", "itself",
        "just", "me", "more", "most", "my", "no", "nor", "not", "now", "of",
        "off", "on", "once", "only", "or", "other", "our", "ours", "out",
        "over", "own", "same", "she", "should", "so", "some", "such", "than",
        "that", "the", "their", "theirs", "them", "then", "there", "these",
        "they", "this", "those", "through", "to", "too", "under", "until", "up",
        "very", "was", "we", "were", "what", "when", "where", "which", "while",
        "who", "whom", "why", "will", "with", "would", "you", "your", "yours",
        "的", "了", "是", "在", "和", "与", "吗", "呢", "吧", "啊", "么", "什么",
    }
)
