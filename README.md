# marketauth

An authentication service for a marketplace backend. It issues signed JWT
access tokens (HS256) and opaque random refresh tokens, keeps users and
refresh tokens in a SQL database through SQLAlchemy, and offers an admin API
for managing users and their roles. The HTTP layer is a Flask application.

## Endpoints

| Method and path | Access | What it does |
| --- | --- | --- |
| `GET /health` | public | Database and Redis status, uptime, version, thread count, memory figures |
| `POST /auth/register` | public | Body `email`, `password` (at least 8 characters), optional `role`; returns a token pair (201) |
| `POST /auth/login` | public | Body `email`, `password`; returns a token pair |
| `POST /auth/refresh` | public | Swaps a refresh token for a new pair and revokes the old one |
| `POST /auth/logout` | public | Revokes the refresh token and clears the cookies |
| `GET /api/me` | bearer token | The caller's `user_id`, `email` and `role` |
| `GET /admin/users` | admin | Users newest first; query `limit` (default 10) and `offset` (default 0) |
| `POST /admin/users` | admin | Body `email`, `password`, `role`; creates a user (201) |
| `PUT /admin/users/<id>/role` | admin | Body `role`; changes a user's role |
| `DELETE /admin/users/<id>` | admin | Deletes a user; an admin cannot delete themselves |

Token pairs come back as `{"access_token", "refresh_token", "expires_in"}`
and are also set as HTTP-only cookies (`access_token` for 15 minutes,
`refresh_token` for 24 hours). Refresh and logout read the refresh token from
the `refresh_token` cookie, or from a JSON body `{"refresh_token": ...}`.

Roles are `user`, `seller` and `admin`; registration without a role gives
`user`. Protected routes expect `Authorization: Bearer <access token>`.
Every response carries permissive CORS headers, and `OPTIONS` requests are
answered with 204.

## Installation

```
pip install .
```

## Running

The `marketauth` command reads its settings from environment variables,
connects to PostgreSQL (and to Redis unless `REDIS_ENABLED` is not `true`),
and serves until SIGINT or SIGTERM. The two JWT secrets are required:

```
export JWT_ACCESS_SECRET=secret
export JWT_REFRESH_SECRET=secret
export DB_HOST=localhost DB_USER=user DB_PASSWORD=password DB_NAME=auth
marketauth
```

Logs go to standard output: JSON lines when `ENV=production`, otherwise
`key=value` text.

### Settings

| Variable | Default |
| --- | --- |
| `DB_HOST`, `DB_PORT` | `localhost`, `5432` |
| `DB_USER`, `DB_PASSWORD`, `DB_NAME` | `auth`, empty, `auth` |
| `DB_SSLMODE` | `disable` |
| `DB_MAX_CONNS`, `DB_MIN_CONNS` | `25`, `5` |
| `DB_QUERY_TIMEOUT` | `5s` |
| `HTTP_HOST` | `:8081` |
| `SHUTDOWN_TIMEOUT`, `REQUEST_TIMEOUT` | `10s`, `30s` |
| `LOG_LEVEL` | `info` |
| `ENV` | set to `production` for JSON logs |
| `REDIS_ENABLED` | `true` |
| `REDIS_ADDR`, `REDIS_PASSWORD`, `REDIS_DB` | `localhost:6379`, empty, `1` |
| `REDIS_PREFIX`, `REDIS_TTL` | `auth:`, `24h` |
| `JWT_ACCESS_EXPIRATION`, `JWT_REFRESH_EXPIRATION` | `15m`, `24h` |
| `JWT_ISSUER` | `marketback-auth` |
| `FIRST_ADMIN_EMAIL` | empty |
| `RATE_LIMIT_ENABLED`, `RATE_LIMIT_INTERVAL`, `RATE_LIMIT_MAX` | `false`, `1m`, `100` |

Durations use forms such as `300ms`, `1m30s` and `24h`
(`marketauth.config.parse_duration`). A malformed value makes
`marketauth.config.load` raise `ConfigError`.

## Using it as a library

```python
from marketauth import config
from marketauth.app import create_app
from marketauth.db import connect
from marketauth.repository import create_schema

cfg = config.load()
engine = connect(cfg.database, "sqlite:///auth.db")
create_schema(engine)
app = create_app(cfg, engine)
```

`connect` builds a PostgreSQL engine from the `DatabaseConfig` unless a
SQLAlchemy URL is given, and checks that the database answers.

`AuthService` in `marketauth.service` can be used on its own: give it a
`JWTConfig` and a `UserRepository` and `TokenRepository` from
`marketauth.repository`. It offers `register`, `login`, `refresh_tokens`,
`revoke_token` and `validate_access_token`.

`marketauth.blacklist.TokenBlacklistService` keeps a Redis-backed blacklist
of token ids and of whole users, with a time to live per entry.

## Example requests

```
curl -X POST localhost:8081/auth/register \
     -H 'Content-Type: application/json' \
     -d '{"email": "someone@example.com", "password": "password"}'

curl localhost:8081/api/me -H 'Authorization: Bearer token'
```

## What it does not do

- It does not create the database tables; call
  `marketauth.repository.create_schema(engine)` once before serving.
- Registration always uses the requested or default role;
  `FIRST_ADMIN_EMAIL` is honoured only by `UserRepository.create`, which the
  HTTP endpoints do not call.
- The rate-limit settings, `REQUEST_TIMEOUT`, `REDIS_PREFIX` and `REDIS_TTL`
  are read but not acted on. Redis is used only by the health check; the
  token blacklist is not consulted when access tokens are checked.
- There is no API documentation endpoint.

## Tests

```
pip install .[test]
pytest
```