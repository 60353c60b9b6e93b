"""Request helpers shared by the route modules."""

from flask import current_app, request

from portfolio_backend.errors import ValidationError


def pagination_args(default_limit=None):
    """Read page/limit query parameters, bounded by MAX_ITEMS_PER_PAGE."""
    default_limit = default_limit or current_app.config['ITEMS_PER_PAGE']
    try:
        page = int(request.args.get('page', 1))
        limit = int(request.args.get('limit', default_limit))
    except ValueError:
        raise ValidationError('page and limit must be integers')
    if page < 1 or limit < 1:
        raise ValidationError('page and limit must be positive')
    return page, min(limit, current_app.config['MAX_ITEMS_PER_PAGE'])


def paginate(query, default_limit=None):
    page, limit = pagination_args(default_limit)
    result = query.paginate(page=page, per_page=limit, error_out=False)
    return result, {
        'currentPage': result.page,
        'totalPages': result.pages,
        'totalItems': result.total,
        'limit': limit,
        'hasNext': result.has_next,
        'hasPrev': result.has_prev,
    }


def client_ip():
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.remote_addr
