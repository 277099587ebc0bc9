"""
Prompt text for mandala generation.

Holds the instructions sent to the language models, the image prompt
enhancement, and the local prompt builder used when no model answers.
"""
import re
from typing import Dict, Optional

from mandalamind.schemas.brainwave import BrainwaveData
from mandalamind.schemas.mandala import ColorPalette, MandalaGenerationOptions, MandalaStyle

SYSTEM_PROMPT = """You are an AI that creates detailed mandala generation prompts by analyzing brain wave data and voice transcripts.

Create mandala prompts that reflect the beautiful traditional dot painting style with:
- Intricate concentric circles made of small dots in various sizes
- Deep blue background with radiating dotted patterns
- Lotus-like flower patterns with detailed petal work
- Sacred geometric patterns using dot work technique
- White and light blue dots creating luminous effects against dark blue
- Multiple layers of circular patterns from center outward
- Traditional spiritual symbolism expressed through dot art

Your task is to create a beautiful, spiritually meaningful mandala prompt that reflects:
1. The person's mental state based on their brain waves
2. The emotional content and themes from their voice transcript
3. Traditional dot painting mandala style with intricate geometric patterns

Always respond in English regardless of the input language, as the image generation requires English prompts."""


def build_user_prompt(options: MandalaGenerationOptions) -> str:
    bw = options.brainwaveData
    return f"""Please create a mandala generation prompt based on this data:

Voice Transcript: "{options.voiceTranscript}"

Brain Wave Data:
- Attention Level: {bw.attention}% (0-100, higher = more focused)
- Meditation Level: {bw.meditation}% (0-100, higher = more relaxed/meditative)
- Signal Quality: {bw.signalQuality}% (connection quality)

Style Preference: {options.style.value}
Color Palette: {options.colorPalette.value}

Guidelines:
- High attention (>70%) = sharp, precise dot patterns, focused geometric energy
- High meditation (>70%) = flowing, soft dot gradients, peaceful circular patterns
- Balanced levels = harmonious, symmetrical dot work designs
- Low signal quality should be noted but not prevent generation

Extract emotional themes, spiritual concepts, and energy patterns from the voice transcript.
Incorporate traditional dot painting mandala elements:
- Concentric circles of dots in various sizes
- Sacred lotus patterns with dotted petals
- Deep blue base with luminous white/light blue dots
- Radiating geometric patterns from center outward
- Multiple layers of intricate dot work
- Traditional spiritual symbolism expressed through dot art technique

Always create prompts in English for image generation compatibility, regardless of input language.

Respond with JSON: {{ "prompt": "detailed traditional dot painting mandala generation prompt in English" }}"""


SENTIMENT_SYSTEM_PROMPT = (
    "You are a sentiment analysis expert. Analyze the emotional content of text and provide "
    "a rating, confidence score, and dominant emotions. Respond with JSON in this format: "
    "{ 'rating': number (1-5), 'confidence': number (0-1), 'emotions': string[] }"
)


def enhance_image_prompt(prompt: str, brainwave: Optional[BrainwaveData] = None) -> str:
    """Wrap a mandala prompt with composition guidance shaped by the reading."""
    if brainwave is not None:
        if brainwave.attention > 70:
            complexity = "highly intricate and precisely detailed with sharp geometric precision"
            modifiers = "focused energy patterns with crystalline clarity, "
        elif brainwave.attention < 30:
            complexity = "flowing and organic with soft, dreamy details"
            modifiers = "gentle, flowing energy with soft focus, "
        else:
            complexity = "balanced complexity with harmonious details"
            modifiers = "centered and stable energy patterns, "

        if brainwave.meditation > 70:
            intensity = "deep, calming colors with gentle gradients and peaceful luminescence"
            modifiers += "serene and tranquil atmosphere with smooth color transitions, "
        elif brainwave.meditation < 30:
            intensity = "vibrant, dynamic colors with energetic contrasts and bright highlights"
            modifiers += "active and energetic atmosphere with bold color contrasts, "
        else:
            intensity = "balanced color palette with moderate intensity and natural harmony"
            modifiers += "harmonious and balanced energy, "

        if brainwave.signalQuality < 50:
            modifiers += "with subtle ethereal effects and mystical atmosphere, "
    else:
        complexity = "intricate and detailed"
        intensity = "vibrant and luminous colors"
        modifiers = "balanced energy and harmonious design, "

    return f"""Create an exquisite traditional dot painting mandala masterpiece: {prompt}.

MANDALA STRUCTURE:
- Perfectly circular and symmetrical design with {complexity}
- Multiple concentric rings of dots in varying sizes (from tiny pinpoints to larger accent dots)
- Sacred geometric patterns including lotus petals, triangular formations, and spiral motifs
- Traditional Aboriginal-inspired dot work technique with modern spiritual symbolism

COLOR PALETTE & ATMOSPHERE:
- {intensity}
- Deep celestial blue background (#1a237e to #000051 gradient)
- Luminous white and light blue dots (#ffffff, #e3f2fd, #bbdefb) creating stellar effects
- Accent colors: gold (#ffd700), turquoise (#40e0d0), and lavender (#e6e6fa)
- {modifiers}

ARTISTIC DETAILS:
- Center: Sacred symbol or flower motif with radiating energy
- Inner rings: Detailed lotus petals with intricate dot patterns
- Middle rings: Geometric patterns, mandalic squares, and triangular formations
- Outer rings: Protective circles with guardian symbols and flowing energy
- Edge: Subtle starburst effects and cosmic energy radiations

TECHNIQUE:
- Traditional pointillism technique with varying dot densities
- Dots should create optical mixing and luminous effects
- Perfect symmetry across all axes
- Professional spiritual artwork quality
- Fills entire circular canvas with balanced composition

The final result should be a breathtakingly beautiful, spiritually uplifting mandala that reflects the user's mental and emotional state through color, pattern, and energy flow. High resolution, museum-quality artistic rendering."""


# --- local fallback prompt ---

THEME_PATTERNS = {
    "peace": re.compile(r"\b(peace|calm|serene|tranquil|quiet|still|harmony|balance)\b"),
    "love": re.compile(r"\b(love|heart|compassion|kindness|care|affection|warmth)\b"),
    "strength": re.compile(r"\b(strength|strong|power|courage|confident|brave|determined)\b"),
    "growth": re.compile(r"\b(grow|change|transform|evolve|progress|develop|journey|path)\b"),
    "gratitude": re.compile(r"\b(grateful|thank|appreciation|blessed|fortunate|abundance)\b"),
}

THEME_SYMBOLS = {
    "peace": ("Incorporate symbols of inner peace: dove motifs, olive branches, and gentle wave "
              "patterns flowing through the dot work. "),
    "love": ("Include heart-centered symbolism: lotus flowers blooming from the center, infinity "
             "symbols, and radiating rays of compassion. "),
    "strength": ("Add symbols of inner strength: mountain-like triangular patterns, shield "
                 "formations, and bold radiating lines of empowerment. "),
    "growth": ("Express transformation: spiral patterns, tree-like branching formations, and "
               "evolving geometric patterns that grow in complexity. "),
    "gratitude": ("Embody gratitude: sun-like radiating patterns, flowering motifs, and warm "
                  "embracing circles that express appreciation. "),
}

PALETTE_DESCRIPTIONS = {
    ColorPalette.WARM: ("warm sunset palette: deep oranges (#ff8c00), rich reds (#dc143c), golden "
                        "yellows (#ffd700), and bronze dots (#cd7f32) against a deep amber "
                        "background (#ff8c00 to #8b4513 gradient)"),
    ColorPalette.COOL: ("cool celestial palette: deep midnight blues (#191970), purples (#663399), "
                        "teals (#008b8b), and silver-white dots (#f5f5dc) against a cosmic blue "
                        "background (#000080 to #191970 gradient)"),
    ColorPalette.VIBRANT: ("vibrant cosmic palette: electric blues (#0066ff), luminous whites "
                           "(#ffffff), light blues (#87ceeb), turquoise accents (#40e0d0), and gold "
                           "highlights (#ffd700) against a deep space blue background (#000051 to "
                           "#1a237e gradient)"),
    ColorPalette.MONOCHROME: ("sophisticated monochrome palette: pure whites (#ffffff), light grays "
                              "(#d3d3d3), medium grays (#808080), and charcoal (#36454f) against a "
                              "deep black background (#000000 to #1c1c1c gradient)"),
}

STYLE_DESCRIPTIONS = {
    MandalaStyle.TRADITIONAL: ("with classical mandala elements, traditional Buddhist and Hindu "
                               "symbolism, and time-honored sacred geometry"),
    MandalaStyle.MODERN: ("with contemporary geometric interpretations, sleek minimalist elements, "
                          "and innovative pattern combinations"),
    MandalaStyle.ABSTRACT: ("with experimental dot arrangements, unconventional symmetries, and "
                            "artistic expression that breaks traditional boundaries"),
    MandalaStyle.SPIRITUAL: ("with deep sacred symbolism, chakra representations, and mystical "
                             "elements that connect to universal consciousness"),
}


def extract_themes(transcript: str) -> Dict[str, bool]:
    lower = (transcript or "").lower()
    return {name: bool(pattern.search(lower)) for name, pattern in THEME_PATTERNS.items()}


def build_fallback_prompt(options: MandalaGenerationOptions) -> str:
    bw = options.brainwaveData
    prompt = ("Create an exquisite traditional dot painting mandala masterpiece with concentric "
              "circles of luminous dots in varying sizes. ")

    if bw.attention > 70:
        prompt += ("Ultra-precise geometric dot patterns with crystalline clarity, sharp angular "
                   "formations, and highly detailed symmetrical structures. Each dot perfectly "
                   "placed for maximum focus and concentration energy. ")
    elif bw.attention < 30:
        prompt += ("Soft, organic dot patterns with flowing transitions, gentle curves, and dreamy "
                   "ethereal formations. Dots create flowing energy like water or clouds. ")
    else:
        prompt += ("Balanced dot patterns with harmonious geometric structures, moderate "
                   "complexity, and stable radial symmetry. Perfect equilibrium between order "
                   "and flow. ")

    if bw.meditation > 70:
        prompt += ("Deep, peaceful dot gradients creating waves of tranquility, with gentle "
                   "spirals and calming circular patterns that radiate serene energy from the "
                   "center outward. ")
    elif bw.meditation < 30:
        prompt += ("Dynamic, energetic dot work with vibrant spiral patterns, active radiating "
                   "lines, and pulsing geometric forms that express vitality and movement. ")
    else:
        prompt += ("Centered, grounded dot patterns with stable circular formations and balanced "
                   "energy distribution throughout the design. ")

    prompt += f"Color scheme: {PALETTE_DESCRIPTIONS[options.colorPalette]}. "

    transcript = options.voiceTranscript or ""
    if len(transcript) > 5:
        themes = extract_themes(transcript)
        lower = transcript.lower()
        # Substring hints catch inflections the word patterns miss ("thanks", "hearts")
        hints = {
            "peace": ("peace", "calm"),
            "love": ("love", "heart"),
            "strength": ("strength", "power"),
            "growth": ("growth", "change"),
            "gratitude": ("grateful", "thank"),
        }
        for theme, words in hints.items():
            if themes[theme] or any(w in lower for w in words):
                prompt += THEME_SYMBOLS[theme]

    prompt += f"Design aesthetic: {STYLE_DESCRIPTIONS[options.style]}. "
    prompt += ("Multiple layers of intricate dot work radiating from a powerful center motif "
               "outward through concentric rings of increasing complexity. ")
    prompt += ("Perfect circular composition with museum-quality artistic detail, spiritual depth, "
               "and breathtaking beauty that inspires meditation and inner reflection. ")
    prompt += ("Each dot placed with intention to create optical harmony and luminous effects "
               "that seem to glow with inner light.")
    return prompt


def dalle_image_prompt(prompt: str) -> str:
    return (
        f"Create a detailed traditional dot painting mandala artwork: {prompt}. "
        "The mandala should be perfectly circular and symmetrical with intricate concentric circles "
        "made of small dots in various sizes. Use a deep blue background with white and light blue "
        "luminous dots creating radiating patterns. Include lotus-like flower patterns with detailed "
        "dotted petal work and sacred geometric patterns expressed through traditional dot art "
        "technique. Multiple layers of circular dot patterns should radiate from center outward. "
        "The style should be spiritual, meditative, and reminiscent of traditional Aboriginal dot "
        "painting techniques adapted for mandala art. Ensure the mandala is perfectly centered and "
        "fills the entire circular frame."
    )
