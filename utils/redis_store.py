from redis import Redis


def create_redis_client(config) -> Redis:
    """Build the process-wide fast store client; every call is bounded by a socket timeout."""
    timeout = config.get("REDIS_SOCKET_TIMEOUT_SECONDS", 0.5)
    return Redis.from_url(
        config["REDIS_URL"],
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        decode_responses=True,
    )


def init_redis(app, client=None):
    if client is None:
        client = create_redis_client(app.config)
    app.extensions["redis"] = client
    return client


def close_redis(app) -> None:
    client = app.extensions.pop("redis", None)
    if client is not None:
        client.close()
