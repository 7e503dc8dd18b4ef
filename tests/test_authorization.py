"""
Unit Tests for Authorization
Tests for: role checks, navigation decisions, route registry, session guard
"""
import pytest

from campus_connect.auth import SessionManager
from campus_connect.jwt_auth import AuthenticationError, AuthorizationError, require_auth
from campus_connect.models.enums import AccessDecision, IssueCategory, UserRole
from campus_connect.models.user import User
from campus_connect.services.authorization import RouteRegistry, can_access, decide_access


def make_user(role, **extra):
    return User(id=f"id-{role}", name="Test User", email=f"{role}@campus.edu", role=role, **extra)


@pytest.fixture
def student():
    return make_user(UserRole.STUDENT, department="Computer Science")


@pytest.fixture
def authority():
    return make_user(UserRole.AUTHORITY, categories=[IssueCategory.HOSTEL])


@pytest.fixture
def registry(logger):
    routes = RouteRegistry(logger)
    routes.register("/login", "Sign in", public=True)
    routes.register("/", "Home", public=True)
    routes.register("/dashboard", "Dashboard")
    routes.register("/issues/new", "Report an issue", [UserRole.STUDENT, UserRole.FACULTY])
    routes.register("/queue", "Assigned issues", [UserRole.AUTHORITY])
    return routes


class TestCanAccess:
    """Test the role predicate"""

    def test_anonymous_never_allowed(self):
        assert not can_access(None)
        assert not can_access(None, [UserRole.STUDENT])

    def test_empty_roles_admit_any_principal(self, student, authority):
        assert can_access(student)
        assert can_access(authority, [])

    def test_role_membership(self, student):
        assert can_access(student, [UserRole.STUDENT, UserRole.FACULTY])
        assert not can_access(student, [UserRole.AUTHORITY])

    def test_roles_compare_as_strings(self, student):
        assert can_access(student, ["student"])


class TestDecideAccess:
    """Test navigation classification"""

    def test_anonymous_redirects_to_login(self):
        assert decide_access(None, [UserRole.AUTHORITY]) == AccessDecision.REDIRECT_LOGIN

    def test_matching_role_allowed(self, authority):
        assert decide_access(authority, [UserRole.AUTHORITY]) == AccessDecision.ALLOW

    def test_mismatched_role_forbidden(self, student):
        assert decide_access(student, [UserRole.AUTHORITY]) == AccessDecision.FORBIDDEN


class TestRouteRegistry:
    """Test page registration and resolution"""

    def test_public_page_for_anonymous(self, registry):
        nav = registry.resolve("/login", None)

        assert nav.allowed
        assert nav.target == "/login"

    def test_protected_page_redirects_anonymous(self, registry):
        nav = registry.resolve("/dashboard", None)

        assert nav.decision == AccessDecision.REDIRECT_LOGIN
        assert nav.target == registry.login_path
        assert nav.requested == "/dashboard"

    def test_role_mismatch_lands_on_neutral_page(self, registry, student):
        nav = registry.resolve("/queue", student)

        assert nav.decision == AccessDecision.FORBIDDEN
        assert nav.target == registry.forbidden_path

    def test_matching_role_opens_page(self, registry, authority):
        nav = registry.resolve("/queue", authority)

        assert nav.allowed
        assert nav.target == "/queue"

    def test_unknown_path(self, registry, student):
        with pytest.raises(KeyError):
            registry.resolve("/missing", student)

    def test_routes_for_principal(self, registry, student, authority):
        student_paths = [entry.path for entry in registry.get_routes_for(student)]
        authority_paths = [entry.path for entry in registry.get_routes_for(authority)]
        anonymous_paths = [entry.path for entry in registry.get_routes_for(None)]

        assert student_paths == ["/login", "/", "/dashboard", "/issues/new"]
        assert authority_paths == ["/login", "/", "/dashboard", "/queue"]
        assert anonymous_paths == ["/login", "/"]

    def test_reregister_overwrites(self, registry, student):
        registry.register("/queue", "Assigned issues", [UserRole.STUDENT])

        assert registry.resolve("/queue", student).allowed
        assert registry.get_route("/queue").required_roles == frozenset({UserRole.STUDENT})


class TestSessionManager:
    """Test the in-memory session holder"""

    def test_starts_signed_out(self):
        session = SessionManager()

        assert not session.is_authenticated
        assert session.access_token is None
        with pytest.raises(RuntimeError):
            session.get_current_user()

    def test_set_and_clear(self, student):
        session = SessionManager()
        session.set_session("token-1", student)

        assert session.get_current_user() == student
        assert session.access_token == "token-1"

        session.clear()
        assert session.current_user is None
        assert session.access_token is None

    def test_empty_token_rejected(self, student):
        with pytest.raises(ValueError):
            SessionManager().set_session("", student)

    def test_replace_user_requires_token(self, student):
        with pytest.raises(RuntimeError):
            SessionManager().set_current_user(student)


class TestRequireAuth:
    """Test the service-layer guard decorator"""

    def test_signed_out_call_is_refused(self):
        session = SessionManager()

        @require_auth(session)
        def view_profile():
            return "profile"

        with pytest.raises(AuthenticationError):
            view_profile()

    def test_any_principal_without_roles(self, student):
        session = SessionManager()
        session.set_session("token-1", student)

        @require_auth(session)
        def view_profile():
            return "profile"

        assert view_profile() == "profile"

    def test_role_gate(self, student, authority):
        session = SessionManager()

        @require_auth(session, roles={UserRole.AUTHORITY})
        def assign_issue(issue_id):
            return f"assigned {issue_id}"

        session.set_session("token-1", student)
        with pytest.raises(AuthorizationError):
            assign_issue("i-7")

        session.set_session("token-2", authority)
        assert assign_issue("i-7") == "assigned i-7"
