"""Document question answering with page-level citations."""
