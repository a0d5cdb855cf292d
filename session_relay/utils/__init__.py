def mask_cookie_header(header: str) -> str:
    """Keep cookie names readable in logs while hiding their values."""
    if not header:
        return "<empty>"
    masked = []
    for pair in header.split("; "):
        name, _, value = pair.partition("=")
        masked.append(f"{name}={value[:4]}****" if value else name)
    return "; ".join(masked)
