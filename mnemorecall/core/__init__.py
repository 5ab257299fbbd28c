"""
Core collaborators: metadata store, vector store, embeddings, LLM and tokenizer.
"""
