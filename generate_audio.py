"""Generate pronunciation and coaching clips for the Bopomofo symbols using gTTS."""
import os
from gtts import gTTS
from bopomofo.constants import AUDIO_DIR, SPEECH_LANG
from bopomofo.services.speech import audio_clips


def generate_audio_files():
    """Generate an MP3 clip for each symbol and each coach phrase."""
    os.makedirs(AUDIO_DIR, exist_ok=True)
    clips = audio_clips()

    for clip, text in clips.items():
        filename = f"{clip}.mp3"
        filepath = os.path.join(AUDIO_DIR, filename)

        print(f"Generating audio for {text} ({clip})...")

        try:
            # Slow speech for symbols so each sound is clearly audible
            tts = gTTS(text=text, lang=SPEECH_LANG, slow=clip.startswith("symbol_"))
            tts.save(filepath)
            print(f"  ✓ Saved {filename}")
        except Exception as e:
            print(f"  ✗ Error generating {filename}: {e}")

    print(f"\n✓ Generated {len(clips)} audio files in {AUDIO_DIR}")


if __name__ == "__main__":
    generate_audio_files()
