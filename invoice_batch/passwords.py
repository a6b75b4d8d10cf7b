"""
Password candidates for protected invoice PDFs.

Invoice exporters frequently embed the open-password in the file name
(a CNPJ fragment, or a literal marker such as "senha1234"). Trying these
candidates lets a batch run without prompting for each protected file.
"""

import re

_DIGIT_RUN = re.compile(r"\d{4,}")
_SEPARATORS = re.compile(r"[\s_-]+")
_SENHA_MARKER = re.compile(r"senha[^\s_-]*", re.IGNORECASE)
_PDF_SUFFIX = re.compile(r"\.pdf$", re.IGNORECASE)


def candidate_passwords(file_name: str) -> list[str]:
    """
    Derive candidate passwords from a file name, most specific first.

    Candidates come from, in order:
    1. every run of 4 or more consecutive digits
    2. name segments (split on whitespace, underscore, hyphen) of 4+ characters,
       without a trailing ".pdf"
    3. the text glued to a "senha" marker, marker removed

    Returns:
        Deduplicated candidates in first-occurrence order (may be empty)
    """
    candidates: list[str] = []

    candidates.extend(_DIGIT_RUN.findall(file_name))

    for segment in _SEPARATORS.split(file_name):
        if len(segment) >= 4:
            candidates.append(_PDF_SUFFIX.sub("", segment))

    marker = _SENHA_MARKER.search(file_name)
    if marker:
        explicit = re.sub(r"(?i)^senha", "", marker.group(0))
        candidates.append(_PDF_SUFFIX.sub("", explicit))

    return [c for c in dict.fromkeys(candidates) if c]
