"""Print the modality decision trace for a reply, without recording an interaction.

Usage: python scripts/explain_decision.py "reply text" ["user message"]
"""

import sys

from voicereply import SynthesisPipeline, build_engine


def main():
    if len(sys.argv) < 2:
        print(__doc__.strip(), file=sys.stderr)
        sys.exit(2)

    engine = build_engine()
    pipeline = SynthesisPipeline(engine.config_store)
    user_message = sys.argv[2] if len(sys.argv) > 2 else None

    decision = engine.explain(sys.argv[1], user_message=user_message)
    print(decision.describe())
    print(f"tts available: {pipeline.is_available()}")


if __name__ == "__main__":
    main()
