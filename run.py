from __future__ import annotations
import os
from barbershop import create_app
from barbershop.extensions import db

def main() -> None:
    flask_app = create_app()

    with flask_app.app_context():
        db.create_all()

    # show what routes are actually mounted
    print("\n=== URL MAP ===")
    for r in sorted(flask_app.url_map.iter_rules(), key=lambda x: x.rule):
        print(r)
    print("===============\n")

    debug_enabled = os.environ.get("FLASK_DEBUG", "0") in {"1", "true", "True"}
    # The reloader would start a second polling thread.
    flask_app.run(
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 5000)),
        debug=debug_enabled,
        use_reloader=False,
    )

if __name__ == "__main__":
    main()
