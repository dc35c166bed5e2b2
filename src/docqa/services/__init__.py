"""Service layer composing the document QA pipeline."""
