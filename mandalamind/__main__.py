import uvicorn

from mandalamind.core import config


def main():
    uvicorn.run("mandalamind.main:app", host=config.HOST, port=config.PORT, log_config=None)


if __name__ == "__main__":
    main()
