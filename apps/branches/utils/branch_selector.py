# apps/branches/utils/branch_selector.py

import re

from apps.utils.exceptions import BusinessValidationError

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_address(text):
    """
    Lower-case and drop everything that isn't an ASCII letter or digit.
    "123 Main St, London" -> "123mainstlondon"
    """
    return _NON_ALNUM.sub("", (text or "").lower())


def positional_score(left, right):
    """
    Count of indexes (up to the shorter length) holding the same character.
    Not an edit distance: a one-character shift near the start ruins the score.
    """
    return sum(1 for a, b in zip(left, right) if a == b)


def select_branch(address_text, branches):
    """
    Picks the branch whose address best matches a free-text delivery address.

    branches: iterable of objects with `id` and `address`, in catalog order.
    Returns the winning branch id. Ties keep the earliest candidate, and a
    list where nothing scores above zero resolves to the first branch.
    """
    branches = list(branches)
    if not branches:
        raise BusinessValidationError("No branches available", code="no_branches_available")

    target = normalize_address(address_text)
    best = branches[0]
    best_score = 0

    for branch in branches:
        score = positional_score(normalize_address(branch.address), target)
        if score > best_score:
            best = branch
            best_score = score

    return best.id


class BranchResolver:
    """
    Seam for swapping the address heuristic (e.g. for geocoding) without
    touching order creation.
    """

    def resolve(self, address_text, branches):
        return select_branch(address_text, branches)
