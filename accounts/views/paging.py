"""Page/pageSize slicing shared by the list endpoints."""


def paginate(qs, *, page: int = 1, page_size: int = 20):
    total = qs.count()
    start = (page - 1) * page_size
    return list(qs[start:start + page_size]), {'total': total, 'page': page, 'pageSize': page_size}
