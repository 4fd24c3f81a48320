"""
Intake Context

Responsibilities:
- Watches the resume directory for new PDF files
- Debounces partial writes until files are stable
- Derives candidate identity from the filename convention

Owns: File discovery, identity parsing
Never: Classifies resumes or writes manifest labels
"""
