from bbs_reader.cli import app

if __name__ == "__main__":
    app()
