"""Profile and preference API endpoints."""

from fastapi import APIRouter

from todolist.api.models import ApiModel, UpdateSettingsRequest
from todolist.factory import get_store
from todolist.models import AppPreferences, ProfileSettings

router = APIRouter()


class SettingsResponse(ApiModel):
    profile: ProfileSettings
    app_prefs: AppPreferences


@router.get("/settings", response_model=SettingsResponse)
async def get_settings() -> SettingsResponse:
    store = get_store()
    return SettingsResponse(profile=store.profile, app_prefs=store.app_prefs)


@router.patch("/settings", response_model=SettingsResponse)
async def update_settings(request: UpdateSettingsRequest) -> SettingsResponse:
    """Update the profile name and/or the preferences present in the request."""
    store = get_store()
    if request.display_name is not None:
        store.update_profile(request.display_name)

    prefs = request.model_dump(mode="json", exclude_unset=True, exclude={"display_name"})
    if prefs:

        def mutate(app_prefs: AppPreferences) -> None:
            for name, value in prefs.items():
                if value is not None:
                    setattr(app_prefs, name, value)

        store.update_preferences(mutate)
    return SettingsResponse(profile=store.profile, app_prefs=store.app_prefs)
