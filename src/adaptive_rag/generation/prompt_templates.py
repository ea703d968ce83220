"""All prompt templates for the adaptive RAG system."""

INTENT_CLASSIFICATION_PROMPT = """You are an intent classifier. Decide how the user's query should be handled.

Categories:
1. chat - no knowledge base needed: greetings, identity questions, writing requests, general small talk.
2. fast_rag - a single retrieval answers it: direct lookups, definitions, document summaries, single facts.
3. reasoning - needs multi-step thinking: multi-hop lookups (find A, then use A to find B), time or condition
   constraints ("in the year X happened, who..."), comparisons, cause/effect analysis, calculations, synthesis
   across several sources. When in doubt between fast_rag and reasoning, choose reasoning.

Query: "{query}"

Output JSON only. confidence must be a single number such as 0.85, never a range.
Example:
{{"intent": "reasoning", "confidence": 0.85, "reasoning": "multi-hop lookup", "keywords": ["founding year"], "complexity": "high", "requiresRetrieval": true, "requiresReasoning": true}}"""

DOCUMENT_GRADING_PROMPT = """Judge whether the passage helps answer the question.

Question: {query}

Passage:
{content}

Return a JSON object:
- "is_relevant": true if the passage contains information useful for answering the question
- "confidence": float between 0.0 and 1.0
- "reasoning": one short sentence"""

QUERY_REWRITE_PROMPT = """The search query below retrieved passages that were mostly judged irrelevant.
Rewrite it so that a hybrid keyword + semantic search finds better passages.

Original question: {original}
Current query: {current}
Pass rate of the last retrieval: {pass_rate:.0%}

Passages judged irrelevant:
{rejected}

Previous rewrites:
{history}

Return a JSON object:
- "rewritten_query": the improved query (do not repeat a previous rewrite)
- "reason": why this rewrite should retrieve better passages
- "keywords": list of up to 8 expanded search keywords"""

QUERY_PLAN_PROMPT = """Break the following complex question into simpler, independent sub-questions that can be searched individually.
Return a JSON object with:
- "sub_questions": list of simple questions (max {max_sub_questions})
- "reasoning_strategy": how the sub-answers combine into the final answer

If the question is already simple, return it as the only sub-question.

Question: {query}"""

CHAT_SYSTEM = """You are a friendly, helpful assistant. Answer conversationally and concisely.
If the user asks for facts you are unsure about, say so."""

CHAT_PROMPT = """{history_block}User: {query}"""

RAG_SYSTEM = """You are a precise, factual assistant. Answer questions using ONLY the provided evidence.
Rules:
- Cite evidence using [1], [2], etc. markers matching the evidence numbers.
- If the evidence doesn't contain enough information, say so clearly.
- Never make up information not present in the evidence.
- Be concise and direct."""

RAG_PROMPT = """{history_block}Question: {query}

Evidence:
{evidence_block}

Provide a clear, well-cited answer based on the evidence above."""

REASONING_SYSTEM = """You are an analytical assistant that answers multi-step questions from evidence.
Rules:
- Work through the sub-questions in order, using earlier findings to resolve later ones.
- Cite every factual step with [1], [2], etc. markers matching the evidence numbers.
- State explicitly when a step cannot be resolved from the evidence.
- End with a short, direct final answer."""

REASONING_PROMPT = """{history_block}Question: {query}

{plan_block}

Evidence:
{evidence_block}

Reason step by step over the evidence, then give the final answer."""

NO_CONTEXT_PROMPT = """{history_block}Question: {query}

No relevant passages were found in the knowledge base. Answer from general knowledge if you can,
and state clearly that the answer is not backed by the knowledge base."""

CLAIM_VERIFICATION_PROMPT = """Check each claim against the evidence.

Evidence:
{evidence_block}

Claims:
{claims_block}

Return a JSON object:
- "verdicts": list of {{"index": int, "supported": bool}}, one per claim, using the claim numbers above
- "confidence": float between 0.0 and 1.0 for the overall judgement"""

SUMMARY_PROMPT = """Compress the following conversation into a 100-200 word summary that keeps the key facts,
decisions and open topics.

{conversation}"""

RERANK_PROMPT = """Score how well each passage answers the question.

Question: {query}

Passages:
{evidence_block}

Return a JSON object:
- "scores": list of {{"index": int, "score": float between 0.0 and 1.0}}, one per passage"""


def format_evidence_block(documents: list, max_docs: int = 10, max_chars: int = 1200) -> str:
    """Format documents as a numbered evidence block for prompts."""
    lines = []
    for i, doc in enumerate(documents[:max_docs], 1):
        lines.append(f"[{i}] {doc.content[:max_chars]}")
    return "\n\n".join(lines)


def format_history_block(history: list[tuple[str, str]] | None) -> str:
    """Format (role, content) pairs of recent conversation for prompts."""
    if not history:
        return ""
    lines = ["Conversation so far:"]
    for role, content in history:
        label = {"user": "User", "assistant": "Assistant"}.get(role, "Context")
        lines.append(f"{label}: {content}")
    return "\n".join(lines) + "\n\n"


def format_plan_block(sub_questions: list[str] | None, strategy: str | None) -> str:
    if not sub_questions or len(sub_questions) <= 1:
        return ""
    lines = ["Sub-questions:"]
    for i, sq in enumerate(sub_questions, 1):
        lines.append(f"  {i}. {sq}")
    if strategy:
        lines.append(f"\nReasoning strategy: {strategy}")
    return "\n".join(lines)
