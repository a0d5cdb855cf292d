from .rewriter import RewriteRule, RewriteRuleSet, build_rewrite_rules, rewrite_content
from .sanitizer import sanitize_response_headers, translate_set_cookie
from .interceptor import build_interceptor_script, inject_interceptor

__all__ = [
    "RewriteRule",
    "RewriteRuleSet",
    "build_rewrite_rules",
    "rewrite_content",
    "sanitize_response_headers",
    "translate_set_cookie",
    "build_interceptor_script",
    "inject_interceptor",
]
