from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, List, Optional

from utils.formatting import to_number, to_text


def _to_flag(value):
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, str):
        return {"true": True, "false": False}.get(value.strip().lower())
    return None


def _drop_null_items(value):
    if value is None:
        return []
    if isinstance(value, list):
        return [item for item in value if item is not None]
    return value


# Form values arrive from the browser or from the AI extraction; both send
# loosely typed JSON, so fields coerce instead of rejecting.
Number = Annotated[Optional[float], BeforeValidator(to_number)]
Text = Annotated[Optional[str], BeforeValidator(to_text)]
Flag = Annotated[Optional[bool], BeforeValidator(_to_flag)]


class RecordSection(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def drop_null_members(cls, data):
        # A null section or list means "not filled in"; let the defaults apply
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class Solicitante(RecordSection):
    nombre_razon_social: Text = None
    apellidos: Text = None
    nif_cif: Text = None
    provincia: Text = None
    municipio: Text = None
    calle_plaza: Text = None
    cp: Text = None
    correo_electronico: Text = None


class Representante(RecordSection):
    nombre_razon_social: Text = None
    apellidos: Text = None
    nif: Text = None
    correo_electronico: Text = None
    canal_preferente_notificacion: Text = None


class TipoUso(RecordSection):
    categoria_actividad: Text = None
    subcategoria_especifica: Text = None
    seleccion: Flag = None


class Descripcion(RecordSection):
    asunto: Text = None
    descripcion_actuacion: Text = None
    coste_ejecucion_material: Number = None
    porcentaje: Number = None
    canon: Number = None
    plazo_vigencia: Text = None
    solicitud_justificacion: Text = None


class ParcelaAfectada(RecordSection):
    referencia_catastral: Text = None
    provincia: Text = None
    localidad: Text = None
    poligono: Text = None
    parcela: Text = None
    superficie_parcela: Number = None
    superficie_vinculada: Number = None
    total_superficie: Number = None


class Construccion(RecordSection):
    uso: Text = None
    superficie_ocupada: Number = None
    superficie_construida: Number = None
    edificabilidad: Number = None
    numero_plantas: Number = None
    altura: Number = None
    volumen: Number = None
    separacion_al_eje_caminos: Number = None
    separacion_a_caminos: Number = None
    separacion_a_lindes: Number = None
    coste_transformacion: Number = None
    coste_total: Number = None


class Instalacion(Construccion):
    pass


class Vial(RecordSection):
    superficie_ocupada: Number = None
    coste_transformacion: Number = None


class TecnicoRedactor(RecordSection):
    nombre: Text = None
    titulacion: Text = None
    colegiado_numero: Text = None


class ParametrosUrbanisticos(RecordSection):
    construcciones: Annotated[List[Construccion], BeforeValidator(_drop_null_items)] = Field(default_factory=list)
    instalaciones: Annotated[List[Instalacion], BeforeValidator(_drop_null_items)] = Field(default_factory=list)
    viales: Annotated[List[Vial], BeforeValidator(_drop_null_items)] = Field(default_factory=list)
    tecnico_redactor: TecnicoRedactor = Field(default_factory=TecnicoRedactor)


class PropietarioColindante(RecordSection):
    nombre: Text = None
    direccion_completa: Text = None
    referencia_catastral: Text = None


class ProjectRecord(RecordSection):
    """One DIC filing as collected by the form. `ProjectRecord()` is the blank form."""

    datos_solicitante: Solicitante = Field(default_factory=Solicitante)
    representante_notificacion: Representante = Field(default_factory=Representante)
    tipo_de_uso: TipoUso = Field(default_factory=TipoUso)
    descripcion: Descripcion = Field(default_factory=Descripcion)
    parcelas_afectadas: Annotated[List[ParcelaAfectada], BeforeValidator(_drop_null_items)] = Field(default_factory=list)
    parametros_urbanisticos: ParametrosUrbanisticos = Field(default_factory=ParametrosUrbanisticos)
    propietarios_colindantes: Annotated[List[PropietarioColindante], BeforeValidator(_drop_null_items)] = Field(default_factory=list)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)
