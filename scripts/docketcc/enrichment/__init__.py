"""
Document text extraction and AI summarization of filings.
"""
