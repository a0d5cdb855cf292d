import uvicorn

from session_relay.vars import HOST, PORT


def main() -> None:
    uvicorn.run("session_relay.server:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
