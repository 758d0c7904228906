"""IT news aggregation, LLM classification and hybrid search."""
