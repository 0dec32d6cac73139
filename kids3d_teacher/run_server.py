from kids3d_teacher.config import Config


def main():
    config = Config.from_env()

    import uvicorn
    uvicorn.run("kids3d_teacher.main:app", host=config.host, port=config.port,
                log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
