from stoutly_dash.reports.donations import DonorLeaderboardCard
from stoutly_dash.reports.ga4_stats import (
	Ga4CountriesBarCard,
	Ga4DeviceBarCard,
	Ga4TopEventsBarCard,
	Ga4TrafficLineCard,
)
from stoutly_dash.reports.home import HomeActivityAreaCard


ALL_DASHBOARD_CARDS = [
	HomeActivityAreaCard,
	Ga4TrafficLineCard,
	Ga4DeviceBarCard,
	Ga4TopEventsBarCard,
	Ga4CountriesBarCard,
	DonorLeaderboardCard,
]
