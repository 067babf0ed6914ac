"""
Tessera - a recursive template resolver.

Tessera reads a document's frontmatter, converts it with a preprocessor
picked by file type (HTML, CSS, Markdown, Jinja), renders its
{{ expression | filter }} placeholders and wraps the result in layouts,
resolving includes along the way and reporting include or layout cycles
inline.
"""

__version__ = "1.0.0"
__author__ = "Robert DeVore"
__email__ = "me@robertdevore.com"

from .core import FileResolver, ResolutionContext, TemplateProcessor, Tessera, process_template_file
from .preprocessors import Preprocessor, get_output_file_extension
from .template import render

__all__ = [
    'FileResolver',
    'Preprocessor',
    'ResolutionContext',
    'TemplateProcessor',
    'Tessera',
    'get_output_file_extension',
    'process_template_file',
    'render',
]
