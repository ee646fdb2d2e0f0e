def quote_ident(name: str) -> str:
    """Quote a schema or table name for direct interpolation into SQL."""
    return '"' + name.replace('"', '""') + '"'


def search_path_statement(schema_name: str, *fallback: str) -> str:
    """Build the statement that points a connection at ``schema_name``.

    Args:
        schema_name: Schema searched first
        *fallback: Further schemas searched before ``public``
    Returns:
        str: ``SET search_path`` statement
    """
    schemas = [schema_name] + [s for s in fallback if s and s != schema_name]
    path = ", ".join(quote_ident(s) for s in schemas)
    return f"SET search_path TO {path}, public;"
