"""Library seed data — example collections and test cases for demos and dev setups.

Invoked by ``flask seed-library [--force]``. Safe to re-run: when collections
already exist it does nothing unless ``force`` is set, in which case all
library tables are wiped first (children before parents).

Entries are created through library_service so every seeded test case gets
its version 1 snapshot exactly like a user-created one.
"""

import logging

from app.models import db
from app.models.library import (
    LibraryBookmark,
    LibraryCollection,
    LibraryDependency,
    LibraryDiscussion,
    LibrarySuggestion,
    LibraryTestCase,
    LibraryTestCaseLink,
    LibraryTestCaseTag,
    LibraryTestCaseVersion,
)
from app.services import library_dependency_service, library_service, library_suggestion_service

logger = logging.getLogger(__name__)

# Wipe order: children before parents
_WIPE_ORDER = (
    LibraryDependency,
    LibraryTestCaseVersion,
    LibraryBookmark,
    LibraryDiscussion,
    LibrarySuggestion,
    LibraryTestCaseLink,
    LibraryTestCaseTag,
    LibraryTestCase,
    LibraryCollection,
)

COLLECTIONS = [
    {
        "key": "auth",
        "name": "Authentication & Access",
        "description": "Login, registration, password reset, SSO and session management flows.",
        "icon": "🔐",
    },
    {
        "key": "checkout",
        "name": "Checkout & Payments",
        "description": "Full purchase funnel: cart, address, payment methods, order confirmation.",
        "icon": "🛒",
    },
    {
        "key": "search",
        "name": "Search & Discovery",
        "description": "Product search, filters, sorting and autocomplete.",
        "icon": "🔍",
    },
]

TEST_CASES = [
    {
        "key": "login",
        "collection": "auth",
        "title": "User can log in with valid email and password",
        "description": "A registered user authenticates with email and password and lands on the dashboard.",
        "priority": "P0",
        "difficulty": "EASY",
        "status": "ACTIVE",
        "tags": ["smoke", "auth", "login"],
        "preconditions": 'A registered account exists for "test@example.com".',
        "steps": (
            "1. Navigate to /login\n"
            '2. Enter "test@example.com" in the Email field\n'
            "3. Enter the password\n"
            '4. Click "Sign In"'
        ),
        "expected_outcome": (
            "- User is redirected to the dashboard\n"
            "- A welcome notification is shown\n"
            "- The session cookie is set"
        ),
    },
    {
        "key": "login_invalid",
        "collection": "auth",
        "title": "Login fails with invalid credentials",
        "description": "An error message is shown for a wrong email or password.",
        "priority": "P0",
        "difficulty": "EASY",
        "status": "ACTIVE",
        "tags": ["auth", "login", "negative"],
        "preconditions": "Application is reachable at /login.",
        "steps": (
            "1. Navigate to /login\n"
            "2. Enter an unknown email and a wrong password\n"
            '3. Click "Sign In"'
        ),
        "expected_outcome": (
            "- User stays on /login\n"
            '- "Invalid email or password" is displayed\n'
            "- No session cookie is set"
        ),
    },
    {
        "key": "password_reset",
        "collection": "auth",
        "title": "User can reset password via email link",
        "description": "Request a reset link, open it, set a new password and log in with it.",
        "priority": "P1",
        "difficulty": "MEDIUM",
        "status": "ACTIVE",
        "tags": ["auth", "password-reset"],
        "preconditions": "Email delivery is available in the test environment.",
        "steps": (
            '1. Click "Forgot password?" on /login\n'
            "2. Submit the account email\n"
            "3. Open the reset link from the email\n"
            "4. Set and confirm a new password\n"
            "5. Log in with the new password"
        ),
        "expected_outcome": (
            "- Reset email arrives within 60 seconds\n"
            "- Login with the new password succeeds\n"
            "- The old password is rejected"
        ),
    },
    {
        "key": "logout",
        "collection": "auth",
        "title": "User can log out and session is invalidated",
        "description": "Signing out clears the session and blocks protected routes.",
        "priority": "P1",
        "difficulty": "EASY",
        "status": "DRAFT",
        "tags": ["auth", "logout", "smoke"],
        "preconditions": "User is logged in.",
        "steps": (
            "1. Open the profile menu\n"
            '2. Click "Sign Out"\n'
            "3. Navigate directly to /dashboard"
        ),
        "expected_outcome": "- User is redirected to /login\n- The auth cookie is cleared",
    },
    {
        "key": "checkout_card",
        "collection": "checkout",
        "title": "User can complete checkout with credit card",
        "description": "Happy path from cart to order confirmation paying by card.",
        "priority": "P0",
        "difficulty": "COMPLEX",
        "status": "ACTIVE",
        "tags": ["smoke", "checkout", "payment", "e2e"],
        "preconditions": "User is logged in and a product is in stock.",
        "steps": (
            "1. Add a product to the cart\n"
            "2. Proceed to checkout\n"
            "3. Enter a shipping address\n"
            "4. Pay with a test credit card\n"
            "5. Confirm the order"
        ),
        "expected_outcome": (
            "- Order confirmation page shows an order number\n"
            "- Confirmation email is sent\n"
            "- Cart is empty"
        ),
    },
    {
        "key": "checkout_declined",
        "collection": "checkout",
        "title": "Declined card shows a payment error",
        "description": "The payment provider declines the card and the order is not created.",
        "priority": "P1",
        "difficulty": "MEDIUM",
        "status": "ACTIVE",
        "tags": ["checkout", "payment", "negative"],
        "preconditions": "A decline test card is configured in the payment sandbox.",
        "steps": (
            "1. Add a product to the cart\n"
            "2. Proceed to checkout\n"
            "3. Pay with the decline test card"
        ),
        "expected_outcome": "- A payment error is shown\n- No order is created",
    },
    {
        "key": "search_keyword",
        "collection": "search",
        "title": "Search returns products matching a keyword",
        "description": "Keyword search lists matching products ordered by relevance.",
        "priority": "P1",
        "difficulty": "EASY",
        "status": "ACTIVE",
        "tags": ["search", "smoke"],
        "preconditions": "The catalog index is populated.",
        "steps": '1. Type "laptop" in the search bar\n2. Press Enter',
        "expected_outcome": "- Results contain only matching products\n- Result count is shown",
    },
    {
        "key": "search_filters",
        "collection": "search",
        "title": "Search filters narrow down results",
        "description": "Price and brand filters reduce the result set.",
        "priority": "P2",
        "difficulty": "MEDIUM",
        "status": "DEPRECATED",
        "tags": ["search", "filters"],
        "preconditions": "A keyword search returned results.",
        "steps": "1. Apply a price range filter\n2. Apply a brand filter",
        "expected_outcome": "- Every result matches both filters",
    },
]

# (dependent, prerequisite)
DEPENDENCIES = [
    ("checkout_card", "login"),
    ("checkout_declined", "login"),
    ("logout", "login"),
]


def seed_library(author: str, force: bool = False) -> dict:
    """Create the example library.

    Args:
        author: User id recorded as creator of every seeded row.
        force: Wipe existing library data before seeding.

    Returns:
        Counts of created rows, or {"skipped": True, "collections": n} when
        data exists and force is not set.
    """
    existing = LibraryCollection.query.count()
    if existing and not force:
        logger.info("Library already seeded (%s collections); skipping", existing)
        return {"skipped": True, "collections": existing}

    if existing:
        logger.warning("Wiping library data before re-seed")
        for model in _WIPE_ORDER:
            model.query.delete()
        db.session.commit()

    collections = {}
    for row in COLLECTIONS:
        data = {k: v for k, v in row.items() if k != "key"}
        collections[row["key"]] = library_service.create_collection(data, author)["id"]

    test_cases = {}
    for row in TEST_CASES:
        data = {k: v for k, v in row.items() if k not in ("key", "collection")}
        data["collection_id"] = collections[row["collection"]]
        test_cases[row["key"]] = library_service.create_test_case(data, author)["id"]

    for dependent, prerequisite in DEPENDENCIES:
        library_dependency_service.add_dependency(test_cases[dependent], test_cases[prerequisite])

    # One edit so the example has some history
    library_service.update_test_case(
        test_cases["login"],
        {
            "steps": TEST_CASES[0]["steps"] + '\n5. Verify the username in the header',
            "change_notes": "Added header verification step",
        },
        author,
    )

    library_suggestion_service.create_suggestion(
        test_cases["checkout_card"], "IMPROVEMENT",
        "Cover 3-D Secure challenge flow as a separate step.", author,
    )
    library_service.add_discussion(
        test_cases["password_reset"],
        "Mail delivery in staging is slow; consider raising the 60 second bound.",
        author,
    )

    result = {
        "skipped": False,
        "collections": len(collections),
        "test_cases": len(test_cases),
        "dependencies": len(DEPENDENCIES),
        "suggestions": 1,
        "discussions": 1,
    }
    logger.info("Library seeded: %s", result)
    return result
