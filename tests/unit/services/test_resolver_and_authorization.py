import pytest

from fathom import db
from fathom.constants import DatabaseEngine, UserRole
from fathom.errors import AuthorizationError
from fathom.models.team import Team
from fathom.services.authorization_service import DatabaseAuthorizationService
from fathom.services.database_metrics.mysql_service import MysqlMetricsService
from fathom.services.database_metrics.postgres_service import PostgresMetricsService
from fathom.services.database_metrics.redis_service import RedisMetricsService
from fathom.services.database_metrics.resolver import DatabaseResolver, build_service


@pytest.mark.unit
def test_build_service_by_family(transport) -> None:
    assert isinstance(build_service(DatabaseEngine.MARIADB, transport), MysqlMetricsService)
    assert isinstance(build_service(DatabaseEngine.DRAGONFLY), RedisMetricsService)
    assert build_service("oracle") is None


@pytest.mark.unit
def test_find_by_uuid_follows_probe_order(app, team, make_database, transport) -> None:
    make_database(DatabaseEngine.REDIS, uuid="shared-uuid")
    make_database(DatabaseEngine.POSTGRESQL, uuid="shared-uuid")

    resolved = DatabaseResolver(transport=transport).find_by_uuid("shared-uuid", team.id)

    assert resolved is not None
    assert resolved.engine_type == DatabaseEngine.POSTGRESQL
    assert resolved.family == "postgres"
    assert isinstance(resolved.service, PostgresMetricsService)
    assert resolved.service.transport is transport


@pytest.mark.unit
def test_find_by_uuid_is_team_scoped(app, team, make_database) -> None:
    other = Team(name="other")
    db.session.add(other)
    db.session.commit()
    make_database(DatabaseEngine.MONGODB, uuid="mongo-0001")

    resolver = DatabaseResolver()
    assert resolver.find_by_uuid("mongo-0001", team.id).engine_type == DatabaseEngine.MONGODB
    assert resolver.find_by_uuid("mongo-0001", other.id) is None
    assert resolver.find_by_uuid("mongo-0001", None) is None
    assert resolver.find_by_uuid("missing", team.id) is None


@pytest.mark.unit
@pytest.mark.parametrize(
    ("role", "view", "update", "manage"),
    [
        (UserRole.ADMIN, True, True, True),
        (UserRole.OWNER, True, True, True),
        (UserRole.MEMBER, True, True, False),
        (UserRole.VIEWER, True, False, False),
    ],
)
def test_abilities_by_role(app, make_user, make_database, role, view, update, manage) -> None:
    handle = make_database(DatabaseEngine.POSTGRESQL)
    service = DatabaseAuthorizationService(make_user(role=role))

    assert service.can(UserRole.ABILITY_VIEW, handle) is view
    assert service.can(UserRole.ABILITY_UPDATE, handle) is update
    assert service.can(UserRole.ABILITY_MANAGE, handle) is manage


@pytest.mark.unit
def test_other_team_cannot_view(app, make_user, make_database) -> None:
    other = Team(name="other")
    db.session.add(other)
    db.session.commit()
    handle = make_database(DatabaseEngine.POSTGRESQL)
    outsider = make_user("mallory", UserRole.ADMIN, team_id=other.id)

    assert DatabaseAuthorizationService(outsider).can(UserRole.ABILITY_VIEW, handle) is False


@pytest.mark.unit
def test_authorize_raises_permission_denied(app, make_user, make_database) -> None:
    handle = make_database(DatabaseEngine.REDIS)
    service = DatabaseAuthorizationService(make_user(role=UserRole.VIEWER))

    service.authorize(UserRole.ABILITY_VIEW, handle)
    with pytest.raises(AuthorizationError) as exc_info:
        service.authorize(UserRole.ABILITY_MANAGE, handle)
    assert exc_info.value.message_key == "PERMISSION_DENIED"


@pytest.mark.unit
def test_anonymous_caller_has_no_abilities(app, make_database) -> None:
    handle = make_database(DatabaseEngine.REDIS)
    assert DatabaseAuthorizationService().can(UserRole.ABILITY_VIEW, handle) is False
