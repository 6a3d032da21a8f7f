from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BloodlineLink(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    is_primary: bool = Field(default=False, alias="isPrimary")

    model_config = ConfigDict(populate_by_name=True)


class PigeonPayload(BaseModel):
    name: Optional[str] = None
    gender: Optional[str] = None
    hatch_date: Optional[dt.date] = Field(default=None, alias="hatchDate")
    status: Optional[str] = None
    color: Optional[str] = None
    color_tag_id: Optional[int] = Field(default=None, alias="colorTagId")
    ring_number: Optional[str] = Field(default=None, alias="ringNumber")
    personal_number: Optional[str] = Field(default=None, alias="personalNumber")
    remarks: Optional[str] = None
    notes: Optional[str] = None
    photo_url: Optional[str] = Field(default=None, alias="photoUrl")
    pedigree_images: Optional[List[str]] = Field(default=None, alias="pedigreeImages")
    for_sale: Optional[bool] = Field(default=None, alias="forSale")
    sale_price: Optional[float] = Field(default=None, alias="salePrice")
    hide_price: Optional[bool] = Field(default=None, alias="hidePrice")
    sale_description: Optional[str] = Field(default=None, alias="saleDescription")
    sire_id: Optional[int] = Field(default=None, alias="sireId")
    dam_id: Optional[int] = Field(default=None, alias="damId")
    sire_name: Optional[str] = Field(default=None, alias="sireName")
    sire_ring_number: Optional[str] = Field(default=None, alias="sireRingNumber")
    sire_color: Optional[str] = Field(default=None, alias="sireColor")
    sire_notes: Optional[str] = Field(default=None, alias="sireNotes")
    dam_name: Optional[str] = Field(default=None, alias="damName")
    dam_ring_number: Optional[str] = Field(default=None, alias="damRingNumber")
    dam_color: Optional[str] = Field(default=None, alias="damColor")
    dam_notes: Optional[str] = Field(default=None, alias="damNotes")
    pairing_id: Optional[int] = Field(default=None, alias="pairingId")
    clutch_id: Optional[int] = Field(default=None, alias="clutchId")
    bloodlines: Optional[List[BloodlineLink]] = None

    model_config = ConfigDict(populate_by_name=True)


class PigeonUpdatePayload(PigeonPayload):
    remove_photo: Optional[bool] = Field(default=None, alias="removePhoto")
    remove_pedigree: Optional[List[str]] = Field(default=None, alias="removePedigree")


class NamePayload(BaseModel):
    name: Optional[str] = None


class ColorTagPayload(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None


class PairingCreatePayload(BaseModel):
    sire_id: Optional[int] = Field(default=None, alias="sireId")
    dam_id: Optional[int] = Field(default=None, alias="damId")
    pair_name: Optional[str] = Field(default=None, alias="pairName")

    model_config = ConfigDict(populate_by_name=True)


class PairingUpdatePayload(BaseModel):
    pair_name: Optional[str] = Field(default=None, alias="pairName")
    status: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class ClutchPayload(BaseModel):
    eggs_laid_date: Optional[dt.date] = Field(default=None, alias="eggsLaidDate")
    hatched_date: Optional[dt.date] = Field(default=None, alias="hatchedDate")
    status: Optional[str] = None
    notes: Optional[str] = None
    is_fostered: Optional[bool] = Field(default=None, alias="isFostered")
    biological_pairing_id: Optional[int] = Field(default=None, alias="biologicalPairingId")

    model_config = ConfigDict(populate_by_name=True)


class OrganizationPayload(BaseModel):
    name: Optional[str] = None
    organizer: Optional[str] = None
    location: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None


class SeasonPayload(BaseModel):
    name: Optional[str] = None
    year: Optional[int] = None
    start_date: Optional[dt.date] = Field(default=None, alias="startDate")
    end_date: Optional[dt.date] = Field(default=None, alias="endDate")
    status: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class EntryPayload(BaseModel):
    pigeon_id: Optional[int] = Field(default=None, alias="pigeonId")
    entry_number: Optional[str] = Field(default=None, alias="entryNumber")
    notes: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class EntryUpdatePayload(BaseModel):
    entry_number: Optional[str] = Field(default=None, alias="entryNumber")
    notes: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class RacePayload(BaseModel):
    name: Optional[str] = None
    release_point: Optional[str] = Field(default=None, alias="releasePoint")
    distance: Optional[float] = None
    distance_unit: Optional[str] = Field(default=None, alias="distanceUnit")
    race_date: Optional[dt.date] = Field(default=None, alias="raceDate")
    release_time: Optional[str] = Field(default=None, alias="releaseTime")
    weather_conditions: Optional[str] = Field(default=None, alias="weatherConditions")
    wind_direction: Optional[str] = Field(default=None, alias="windDirection")
    notes: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class ResultPayload(BaseModel):
    pigeon_id: Optional[int] = Field(default=None, alias="pigeonId")
    position: Optional[int] = None
    arrival_time: Optional[str] = Field(default=None, alias="arrivalTime")
    speed: Optional[float] = None
    notes: Optional[str] = None
    did_not_arrive: Optional[bool] = Field(default=None, alias="didNotArrive")

    model_config = ConfigDict(populate_by_name=True)


class SalePayload(BaseModel):
    pigeon_id: Optional[int] = Field(default=None, alias="pigeonId")
    price: Optional[float] = None
    hide_price: Optional[bool] = Field(default=None, alias="hidePrice")
    description: Optional[str] = None
    additional_photos: Optional[List[str]] = Field(default=None, alias="additionalPhotos")

    model_config = ConfigDict(populate_by_name=True)


class AuctionPayload(BaseModel):
    pigeon_id: Optional[int] = Field(default=None, alias="pigeonId")
    starting_price: Optional[float] = Field(default=None, alias="startingPrice")
    increment: Optional[float] = None
    reserve_price: Optional[float] = Field(default=None, alias="reservePrice")
    deadline: Optional[dt.datetime] = None
    description: Optional[str] = None
    additional_photos: Optional[List[str]] = Field(default=None, alias="additionalPhotos")

    model_config = ConfigDict(populate_by_name=True)


def payload_dict(payload: BaseModel) -> dict:
    """Fields the client actually sent, keyed by their snake_case names."""
    return payload.model_dump(exclude_unset=True)
