from .dialects import GRAMMARS, DialectGrammar, FieldGrammar, MarkerGrammar, grammar_for
from .task_parser import extract, parse_content, parse_line, scan_dialects

__all__ = [
    "GRAMMARS",
    "DialectGrammar",
    "FieldGrammar",
    "MarkerGrammar",
    "grammar_for",
    "extract",
    "parse_content",
    "parse_line",
    "scan_dialects",
]
