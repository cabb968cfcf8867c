import datetime
import warnings
from typing import Any, MutableMapping, Optional

import altair as alt
import pandas as pd
import streamlit as st
from altair.utils.deprecation import AltairDeprecationWarning

warnings.filterwarnings("ignore", category=AltairDeprecationWarning)
from db import (
    UserRepository,
    ExerciseRepository,
    CardioRepository,
    StrengthRepository,
    WeightEntryRepository,
    SettingsRepository,
    EmailLogRepository,
)
from algorithms import (
    CalorieCalculator,
    CalorieConstants,
    DateRange,
    relative_label,
)
from auth_service import AuthService, AuthError, public_user
from config import default_db_path, default_yaml_path
from email_service import EmailService
from logging_config import configure_logging
from stats_service import StatisticsService


class PreferenceStore:
    """Key-value store for client-side session and UI preferences."""

    def __init__(self, data: Optional[MutableMapping] = None) -> None:
        self._data = data if data is not None else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class SessionPreferenceStore(PreferenceStore):
    """Preference store scoped to one browser session."""

    PREFIX = "pref_"

    def __init__(self, state: Optional[MutableMapping] = None) -> None:
        super().__init__(state if state is not None else st.session_state)

    def get(self, key: str, default: Any = None) -> Any:
        return super().get(self.PREFIX + key, default)

    def set(self, key: str, value: Any) -> None:
        super().set(self.PREFIX + key, value)


class TrackerApp:
    """Streamlit application for activity tracking."""

    TABS = ["Cardio", "Muscu", "Weight", "Stats", "Profile"]
    PERIODS = {"7 days": 7, "14 days": 14, "30 days": 30, "90 days": 90}
    STATS_MODES = ["calories", "cardio", "muscu", "weight"]

    def __init__(
        self,
        db_path: str = "tracker.db",
        yaml_path: str = "settings.yaml",
        store: Optional[PreferenceStore] = None,
    ) -> None:
        self.store = store or SessionPreferenceStore()
        self.settings_repo = SettingsRepository(db_path, yaml_path)
        self.users = UserRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.cardio = CardioRepository(db_path)
        self.strength = StrengthRepository(db_path)
        self.weights = WeightEntryRepository(db_path)
        self.email = EmailService(EmailLogRepository(db_path))
        self.auth = AuthService(self.users, self.settings_repo, self.email)
        self.stats = StatisticsService(
            self.cardio,
            self.strength,
            self.weights,
            self.users,
            self.settings_repo,
        )

    def _current_user(self) -> Optional[dict]:
        token = self.store.get("auth_token")
        if not token:
            return None
        try:
            return self.auth.authenticate(token)
        except AuthError:
            self.store.set("auth_token", None)
            return None

    def _line_chart(
        self,
        data: dict[str, list],
        x: list[str],
        *,
        x_label: str = "Date",
        y_label: str = "value",
    ) -> None:
        """Render a consistent line chart with accessible labels."""
        df = pd.DataFrame({"x": x})
        for key, values in data.items():
            df[key] = values
        long_df = df.melt("x", var_name="series", value_name="value")
        chart = (
            alt.Chart(long_df.dropna())
            .mark_line(point=True)
            .encode(
                x=alt.X("x", title=x_label),
                y=alt.Y("value", title=y_label, scale=alt.Scale(zero=False)),
                color=alt.Color(
                    "series",
                    scale=alt.Scale(scheme="dark2"),
                    legend=None if len(data) == 1 else alt.Legend(title="Series"),
                ),
            )
        )
        st.altair_chart(chart, use_container_width=True)

    def _bar_chart(
        self,
        data: dict[str, list],
        x: list[str],
        *,
        x_label: str = "Date",
        y_label: str = "value",
    ) -> None:
        """Render a consistent bar chart with accessible labels."""
        df = pd.DataFrame({"x": x})
        for key, values in data.items():
            df[key] = values
        long_df = df.melt("x", var_name="series", value_name="value")
        chart = (
            alt.Chart(long_df)
            .mark_bar()
            .encode(
                x=alt.X("x", title=x_label),
                y=alt.Y("value", title=y_label),
                color=alt.Color(
                    "series",
                    scale=alt.Scale(scheme="dark2"),
                    legend=None if len(data) == 1 else alt.Legend(title="Series"),
                ),
            )
        )
        st.altair_chart(chart, use_container_width=True)

    def _metric_grid(self, metrics: list[tuple[str, Any]]) -> None:
        cols = st.columns(len(metrics))
        for col, (label, val) in zip(cols, metrics):
            with col:
                st.metric(label, val)

    def _day_selector(self, key: str) -> str:
        day = st.date_input("Date", datetime.date.today(), key=key)
        st.caption(relative_label(day))
        return day.isoformat()

    def _exercise_choice(self, user: dict, ex_type: str, key: str) -> str:
        names = [e["name"] for e in self.exercises.fetch_for_user(user["id"], ex_type)]
        return st.selectbox("Exercise", names, key=key)

    def _login_page(self) -> None:
        st.title("Sport Tracker Pro")
        login_tab, register_tab = st.tabs(["Login", "Register"])
        with login_tab:
            email = st.text_input("Email", key="login_email")
            password = st.text_input("Password", type="password", key="login_password")
            if st.button("Login", key="login_submit"):
                try:
                    result = self.auth.login(email, password)
                    self.store.set("auth_token", result["token"])
                    st.rerun()
                except AuthError as e:
                    st.error(str(e))
        with register_tab:
            name = st.text_input("Name", key="reg_name")
            email = st.text_input("Email", key="reg_email")
            password = st.text_input("Password", type="password", key="reg_password")
            if st.button("Create account", key="reg_submit"):
                try:
                    result = self.auth.register(name, email, password)
                    self.store.set("auth_token", result["token"])
                    st.rerun()
                except ValueError as e:
                    st.error(str(e))

    def _cardio_tab(self, user: dict) -> None:
        st.header("Cardio")
        day = self._day_selector("cardio_date")
        with st.expander("Add Session", expanded=True):
            exercise = self._exercise_choice(user, "cardio", "cardio_ex")
            minutes = st.number_input(
                "Minutes", min_value=1.0, value=30.0, step=5.0, key="cardio_minutes"
            )
            intensity = st.selectbox(
                "Intensity", list(CalorieCalculator.INTENSITIES), index=1, key="cardio_intensity"
            )
            st.caption(
                f"≈ {CalorieCalculator.cardio_calories(intensity, user['weight'], minutes, self.settings_repo.calorie_constants())} kcal"
            )
            if st.button("Add Cardio", key="cardio_add"):
                try:
                    ex_id = self.exercises.find_or_create(exercise, "cardio", user["id"])
                    self.cardio.add(
                        user["id"],
                        ex_id,
                        day,
                        minutes,
                        intensity,
                        CalorieCalculator.cardio_calories(
                            intensity,
                            user["weight"],
                            minutes,
                            self.settings_repo.calorie_constants(),
                        ),
                    )
                    st.success("Session added")
                except ValueError as e:
                    st.error(str(e))
        sessions = self.cardio.fetch_history(user["id"], day, day)
        self._metric_grid(
            [
                ("Minutes", sum(s["minutes"] for s in sessions)),
                ("Calories", sum(s["calories"] for s in sessions)),
            ]
        )
        for s in sessions:
            cols = st.columns([4, 1])
            cols[0].write(
                f"{s['exercise_name']}: {s['minutes']:g} min, {s['intensity']}, {s['calories']} kcal"
            )
            if cols[1].button("Delete", key=f"cardio_del_{s['id']}"):
                self.cardio.delete(user["id"], s["id"])
                st.rerun()

    def _muscu_tab(self, user: dict) -> None:
        st.header("Muscu")
        day = self._day_selector("muscu_date")
        with st.expander("Add Exercise", expanded=True):
            exercise = self._exercise_choice(user, "muscu", "muscu_ex")
            col1, col2, col3 = st.columns(3)
            with col1:
                sets = st.number_input("Sets", min_value=1, value=3, step=1, key="muscu_sets")
            with col2:
                reps = st.number_input("Reps", min_value=1, value=10, step=1, key="muscu_reps")
            with col3:
                load = st.number_input(
                    "Weight (kg)", min_value=0.0, value=0.0, step=2.5, key="muscu_load"
                )
            if st.button("Add Muscu", key="muscu_add"):
                try:
                    ex_id = self.exercises.find_or_create(exercise, "muscu", user["id"])
                    self.strength.add(
                        user["id"],
                        ex_id,
                        day,
                        int(sets),
                        int(reps),
                        float(load),
                        CalorieCalculator.strength_calories(
                            int(sets), self.settings_repo.calorie_constants()
                        ),
                    )
                    st.success("Exercise added")
                except ValueError as e:
                    st.error(str(e))
        totals = self.stats.strength_totals(user["id"], day)
        self._metric_grid(
            [
                ("Sets", totals["sets"]),
                ("Volume (kg)", totals["volume"]),
                ("Calories", totals["calories"]),
            ]
        )
        for s in self.strength.fetch_history(user["id"], day, day):
            cols = st.columns([4, 1])
            cols[0].write(
                f"{s['exercise_name']}: {s['sets']}x{s['reps']} @ {s['weight']:g} kg"
            )
            if cols[1].button("Delete", key=f"muscu_del_{s['id']}"):
                self.strength.delete(user["id"], s["id"])
                st.rerun()

    def _weight_tab(self, user: dict) -> None:
        st.header("Body Weight")
        with st.expander("Add Entry", expanded=True):
            day = st.date_input("Date", datetime.date.today(), key="weight_date")
            weight = st.number_input(
                "Weight (kg)", min_value=1.0, value=float(user["weight"]), step=0.1, key="weight_value"
            )
            muscle = st.number_input(
                "Muscle mass (kg, 0 = not measured)", min_value=0.0, value=0.0, key="weight_muscle"
            )
            fat = st.number_input(
                "Body fat (%, 0 = not measured)", min_value=0.0, value=0.0, key="weight_fat"
            )
            if st.button("Save Weight", key="weight_add"):
                self.weights.add(
                    user["id"],
                    day.isoformat(),
                    weight,
                    muscle or None,
                    fat or None,
                )
                latest = self.weights.fetch_latest(user["id"])
                if latest is not None:
                    self.users.set_weight(user["id"], latest["weight"])
                st.success("Weight saved")
        comparison = self.stats.weight_comparison(user["id"])
        latest = comparison["latest"]
        if latest is None:
            st.info("No weight entries yet")
            return
        cols = st.columns(3)
        cols[0].metric("Weight", f"{latest['weight']} kg", comparison["weight_delta"])
        cols[1].metric(
            "Body fat",
            f"{latest['body_fat']} %" if latest["body_fat"] is not None else "-",
            comparison["body_fat_delta"],
        )
        cols[2].metric(
            "Muscle mass",
            f"{latest['muscle_mass']} kg" if latest["muscle_mass"] is not None else "-",
            comparison["muscle_mass_delta"],
        )
        if comparison["weight_change_percent"] is not None:
            st.caption(
                f"{comparison['weight_change_percent']:+} % since "
                f"{comparison['first']['date']}"
            )
        date_range = DateRange.last_n_days(90)
        series = self.stats.daily_series(
            user["id"],
            "weight.weight",
            date_range.start.isoformat(),
            date_range.end.isoformat(),
        )
        self._line_chart(
            {"Weight": [p["value"] for p in series]},
            [p["date"] for p in series],
            y_label="kg",
        )

    def _stats_range(self) -> tuple[str, str]:
        options = list(self.PERIODS) + ["Custom"]
        period = st.radio("Period", options, index=2, horizontal=True, key="stats_period")
        if period == "Custom":
            col1, col2 = st.columns(2)
            with col1:
                start = st.date_input(
                    "Start",
                    datetime.date.today() - datetime.timedelta(days=30),
                    key="stats_start",
                )
            with col2:
                end = st.date_input("End", datetime.date.today(), key="stats_end")
            return start.isoformat(), end.isoformat()
        date_range = DateRange.last_n_days(self.PERIODS[period])
        return date_range.start.isoformat(), date_range.end.isoformat()

    def _summary_metrics(self, summary: dict, unit: str = "") -> None:
        if summary.get("no_data"):
            st.info("No data for this period")
            return
        self._metric_grid(
            [
                ("Total", f"{summary['total']:g}{unit}"),
                ("Average", f"{summary['mean']:g}{unit}"),
                ("Max", f"{summary['max']:g}{unit}"),
                ("Min", f"{summary['min']:g}{unit}"),
            ]
        )

    def _stats_tab(self, user: dict) -> None:
        st.header("Statistics")
        saved_mode = self.store.get("stats_mode", "calories")
        mode = st.selectbox(
            "Mode",
            self.STATS_MODES,
            index=self.STATS_MODES.index(saved_mode)
            if saved_mode in self.STATS_MODES
            else 0,
            key="stats_mode_select",
        )
        self.store.set("stats_mode", mode)
        start, end = self._stats_range()
        if start > end:
            st.warning("Start date is after end date")
        uid = user["id"]
        if mode == "calories":
            result = self.stats.calories(uid, start, end)
            self._summary_metrics(result["summary"], " kcal")
            self._bar_chart(
                {"Calories": [p["value"] for p in result["series"]]},
                [p["date"] for p in result["series"]],
                y_label="kcal",
            )
        elif mode in ("cardio", "muscu"):
            names = [""] + [
                e["name"] for e in self.exercises.fetch_for_user(uid, mode)
            ]
            exercise = st.selectbox("Exercise", names, key=f"stats_{mode}_ex") or None
            metric = "cardio.minutes" if mode == "cardio" else "muscu.sets"
            series = self.stats.daily_series(uid, metric, start, end, exercise)
            self._summary_metrics(self.stats.summary(uid, metric, start, end, exercise))
            self._bar_chart(
                {metric.split(".")[1].title(): [p["value"] for p in series]},
                [p["date"] for p in series],
            )
            if mode == "muscu" and exercise:
                progression = self.stats.load_progression(uid, exercise, start, end)
                if progression:
                    st.subheader("Progression by load")
                    st.table(pd.DataFrame(progression))
        else:
            series = self.stats.daily_series(uid, "weight.weight", start, end)
            self._summary_metrics(
                self.stats.summary(uid, "weight.weight", start, end), " kg"
            )
            self._line_chart(
                {"Weight": [p["value"] for p in series]},
                [p["date"] for p in series],
                y_label="kg",
            )

    def _profile_tab(self, user: dict) -> None:
        st.header("Profile")
        with st.expander("Details", expanded=True):
            name = st.text_input("Name", user["name"], key="profile_name")
            email = st.text_input("Email", user["email"], key="profile_email")
            weight = st.number_input(
                "Weight (kg)", min_value=1.0, value=float(user["weight"]), key="profile_weight"
            )
            if st.button("Save Profile", key="profile_save"):
                try:
                    self.users.update_profile(user["id"], name, email, weight)
                    st.success("Profile updated")
                except ValueError as e:
                    st.error(str(e))
        with st.expander("Change Password"):
            current = st.text_input("Current password", type="password", key="pw_current")
            new = st.text_input("New password", type="password", key="pw_new")
            if st.button("Change Password", key="pw_submit"):
                try:
                    self.auth.change_password(user["id"], current, new)
                    st.success("Password changed")
                except (AuthError, ValueError) as e:
                    st.error(str(e))
        with st.expander("Visible Tabs"):
            visible = st.multiselect(
                "Tabs",
                self.TABS,
                default=self.store.get("visible_tabs", self.TABS),
                key="profile_tabs",
            )
            if st.button("Save Tabs", key="profile_tabs_save"):
                self.store.set("visible_tabs", visible or ["Profile"])
                st.rerun()
        if st.button("Logout", key="logout"):
            self.store.set("auth_token", None)
            st.rerun()

    def _admin_tab(self, user: dict) -> None:
        st.header("Administration")
        self._metric_grid(
            [
                ("Users", self.users.count()),
                ("Cardio", self.cardio.count()),
                ("Muscu", self.strength.count()),
                ("Weight", self.weights.count()),
            ]
        )
        users = self.users.fetch_all_users()
        st.table(
            pd.DataFrame(
                [
                    {
                        **public_user(u),
                        "cardio": u["counts"]["cardio"],
                        "muscu": u["counts"]["muscu"],
                        "weight entries": u["counts"]["weight"],
                    }
                    for u in users
                ]
            )
        )
        with st.expander("Calorie Settings"):
            constants = self.settings_repo.calorie_constants()
            low = st.number_input("MET Faible", min_value=0.1, value=constants.low, key="met_low")
            medium = st.number_input(
                "MET Moyenne", min_value=0.1, value=constants.medium, key="met_medium"
            )
            high = st.number_input("MET Haute", min_value=0.1, value=constants.high, key="met_high")
            per_set = st.number_input(
                "Calories per set", min_value=0.1, value=constants.per_set, key="per_set"
            )
            if st.button("Save Calorie Settings", key="calorie_save"):
                self.settings_repo.set_calorie_constants(
                    CalorieConstants(low=low, medium=medium, high=high, per_set=per_set)
                )
                st.success("Settings saved")

    def run(self) -> None:
        user = self._current_user()
        if user is None:
            self._login_page()
            return
        st.title("Sport Tracker Pro")
        st.caption(f"{user['name']} ({user['role']})")
        names = [t for t in self.TABS if t in self.store.get("visible_tabs", self.TABS)]
        if "Profile" not in names:
            names.append("Profile")
        if user["role"] == "admin":
            names.append("Admin")
        renderers = {
            "Cardio": self._cardio_tab,
            "Muscu": self._muscu_tab,
            "Weight": self._weight_tab,
            "Stats": self._stats_tab,
            "Profile": self._profile_tab,
            "Admin": self._admin_tab,
        }
        for name, tab in zip(names, st.tabs(names)):
            with tab:
                renderers[name](user)


if __name__ == "__main__":
    configure_logging()
    TrackerApp(db_path=default_db_path(), yaml_path=default_yaml_path()).run()
