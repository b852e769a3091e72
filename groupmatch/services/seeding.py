import json
import random
import uuid
from collections import Counter
from typing import Any

from sqlalchemy import text

SPECIALTIES = [
    "Cardiology",
    "Dermatology",
    "Emergency Medicine",
    "Family Medicine",
    "Internal Medicine",
    "Neurology",
    "Pediatrics",
    "Psychiatry",
    "Radiology",
    "Surgery",
]
CITIES = ["Riyadh", "Jeddah", "Dammam", "Mecca", "Medina"]
SPORTS = ["Running", "Tennis", "Padel", "Swimming", "Cycling", "Gym", "Football", "Yoga"]
MUSIC = ["Pop", "Rock", "Jazz", "Classical", "Hip Hop", "Arabic", "Electronic"]
MOVIES = ["Drama", "Comedy", "Documentaries", "Thrillers", "Sci-Fi", "Anime"]
OTHER = ["Cooking", "Travel", "Reading", "Photography", "Board Games", "Coffee", "Hiking"]
SLOTS = [f"{day}_{part}" for day in ("fri", "sat", "sun", "mon", "tue", "wed", "thu") for part in ("morning", "evening")]
ENERGY = ["low-key-intimate", "moderate-energy-small-groups", "high-energy-big-groups", "varies-by-mood"]
CONVERSATION = ["deep-meaningful", "light-fun", "hobby-focused", "mix-everything"]
ACTIVITY = ["prefer-non-physical", "occasionally-active", "moderately-active", "active", "very-active"]
FIRST_NAMES = ["Sara", "Omar", "Lina", "Khalid", "Noura", "Faisal", "Reem", "Yousef", "Huda", "Majed", "Dana", "Ali"]
LAST_NAMES = ["Alharbi", "Alqahtani", "Alotaibi", "Alzahrani", "Alghamdi", "Alshehri", "Aldossary", "Almutairi"]

GENDER_PREFERENCE_WEIGHTS = {
    "no-preference": 0.55,
    "mixed": 0.2,
    "same-gender-preferred": 0.15,
    "same-gender-only": 0.10,
}


def _weighted_choice(rng: random.Random, weights: dict[str, float]) -> str:
    keys = list(weights)
    return rng.choices(keys, weights=[weights[k] for k in keys], k=1)[0]


def _sample(rng: random.Random, options: list[str], lo: int, hi: int) -> list[str]:
    return rng.sample(options, rng.randint(lo, min(hi, len(options))))


def generate_profile(rng: random.Random, *, clustered: bool = False, cluster: int = 0) -> dict[str, Any]:
    """One synthetic row shaped like the profiles table.

    With clustered=True, users of the same cluster share a city and lean
    towards the same specialty and interests, which makes group quality
    differences visible in calibration reports.
    """
    if clustered:
        city = CITIES[cluster % len(CITIES)]
        specialty = SPECIALTIES[cluster % len(SPECIALTIES)] if rng.random() < 0.7 else rng.choice(SPECIALTIES)
        sports = SPORTS[cluster % 4: cluster % 4 + 3]
    else:
        city = rng.choice(CITIES)
        specialty = rng.choice(SPECIALTIES)
        sports = _sample(rng, SPORTS, 1, 3)

    return {
        "id": str(uuid.UUID(int=rng.getrandbits(128), version=4)),
        "first_name": rng.choice(FIRST_NAMES),
        "last_name": rng.choice(LAST_NAMES),
        "medical_specialty": [specialty],
        "specialty": None,
        "specialty_preference": rng.choice(["same", "different", "no-preference"]),
        "city": city,
        "gender": rng.choice(["male", "female"]),
        "gender_preference": _weighted_choice(rng, GENDER_PREFERENCE_WEIGHTS),
        "age": rng.randint(26, 55),
        "sports_activities": {s: rng.randint(1, 5) for s in sports},
        "music_preferences": _sample(rng, MUSIC, 1, 3),
        "movie_tv_preferences": _sample(rng, MOVIES, 1, 3),
        "other_interests": _sample(rng, OTHER, 1, 4),
        "interests": [],
        "availability_slots": _sample(rng, SLOTS, 2, 6),
        "activity_level": rng.choice(ACTIVITY),
        "conversation_style": rng.choice(CONVERSATION),
        "social_energy_level": rng.choice(ENERGY),
        "is_verified": True,
        "is_paid": True,
        "is_banned": False,
        "onboarding_completed": True,
        "active_group_until": None,
    }


def generate_profiles(n_users: int, seed: int = 42, clustered: bool = False, n_clusters: int = 4) -> list[dict[str, Any]]:
    rng = random.Random(seed)
    return [generate_profile(rng, clustered=clustered, cluster=i % n_clusters) for i in range(n_users)]


_JSON_COLUMNS = (
    "medical_specialty",
    "sports_activities",
    "music_preferences",
    "movie_tv_preferences",
    "other_interests",
    "interests",
    "availability_slots",
)


def seed_profiles(db, n_users: int = 60, reset: bool = False, seed: int = 42, clustered: bool = False) -> dict[str, Any]:
    if reset:
        db.execute(text("DELETE FROM match_event"))
        db.execute(text("DELETE FROM matching_logs"))
        db.execute(text("DELETE FROM chat_messages"))
        db.execute(text("DELETE FROM match_members"))
        db.execute(text("DELETE FROM matches"))
        db.execute(text("DELETE FROM profiles"))

    rows = generate_profiles(n_users, seed=seed, clustered=clustered)
    inserted = 0
    for row in rows:
        params = dict(row)
        for col in _JSON_COLUMNS:
            params[col] = json.dumps(params[col])
        res = db.execute(
            text(
                """
                INSERT INTO profiles (
                  id, first_name, last_name, medical_specialty, specialty, specialty_preference, city, gender,
                  gender_preference, age, sports_activities, music_preferences, movie_tv_preferences, other_interests,
                  interests, availability_slots, activity_level, conversation_style, social_energy_level,
                  is_verified, is_paid, is_banned, onboarding_completed, active_group_until
                )
                VALUES (
                  CAST(:id AS uuid), :first_name, :last_name, CAST(:medical_specialty AS jsonb), :specialty,
                  :specialty_preference, :city, :gender, :gender_preference, :age, CAST(:sports_activities AS jsonb),
                  CAST(:music_preferences AS jsonb), CAST(:movie_tv_preferences AS jsonb), CAST(:other_interests AS jsonb),
                  CAST(:interests AS jsonb), CAST(:availability_slots AS jsonb), :activity_level, :conversation_style,
                  :social_energy_level, :is_verified, :is_paid, :is_banned, :onboarding_completed, :active_group_until
                )
                ON CONFLICT (id) DO NOTHING
                """
            ),
            params,
        )
        inserted += int(res.rowcount or 0)
    db.commit()

    return {
        "requested": n_users,
        "inserted": inserted,
        "reset": reset,
        "clustered": clustered,
        "cities": dict(Counter(r["city"] for r in rows)),
        "gender_preferences": dict(Counter(r["gender_preference"] for r in rows)),
    }
