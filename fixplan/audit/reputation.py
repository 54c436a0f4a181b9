"""
Domain reputation / blacklist advisory.

Authoritative blacklist lookups need API keys or DNSBL queries this engine
does not have, so the check is advisory: it names the services and builds
their manual-verification URLs. `listed_on` stays empty unless a caller
supplies confirmed listings.
"""

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional
from urllib.parse import quote


class BlacklistService(NamedTuple):
    name: str
    check_url: str


BLACKLIST_SERVICES: List[BlacklistService] = [
    # Spam
    BlacklistService("Spamhaus ZEN", "https://check.spamhaus.org/listed/?searchterm="),
    BlacklistService("Spamcop", "https://www.spamcop.net/bl.shtml?query="),
    BlacklistService("Barracuda", "https://www.barracudacentral.org/lookups/lookup-reputation?lookup_entry="),
    # Security
    BlacklistService("Google Safe Browsing", "https://transparencyreport.google.com/safe-browsing/search?url="),
    BlacklistService("PhishTank", "https://www.phishtank.com/target_search.php?target="),
    BlacklistService("VirusTotal", "https://www.virustotal.com/gui/domain/"),
    BlacklistService("URLVoid", "https://www.urlvoid.com/scan/"),
    BlacklistService("Sucuri SiteCheck", "https://sitecheck.sucuri.net/results/"),
    # Email
    BlacklistService("MXToolbox", "https://mxtoolbox.com/SuperTool.aspx?action=blacklist%3a"),
    BlacklistService("DNSBL", "https://www.dnsbl.info/dnsbl-database-check.php?domain="),
    # Malware
    BlacklistService("Norton Safe Web", "https://safeweb.norton.com/report/show?url="),
    BlacklistService("McAfee SiteAdvisor", "https://www.siteadvisor.com/sitereport.html?url="),
    BlacklistService("Kaspersky", "https://opentip.kaspersky.com/?query="),
    # Threat intelligence
    BlacklistService("AbuseIPDB", "https://www.abuseipdb.com/check/"),
    BlacklistService("Talos Intelligence", "https://talosintelligence.com/reputation_center/lookup?search="),
    BlacklistService("IBM X-Force", "https://exchange.xforce.ibmcloud.com/url/"),
    BlacklistService("AlienVault OTX", "https://otx.alienvault.com/indicator/domain/"),
    BlacklistService("Pulsedive", "https://pulsedive.com/indicator/?ioc="),
    BlacklistService("ThreatCrowd", "https://www.threatcrowd.org/domain.php?domain="),
    BlacklistService("Hybrid Analysis", "https://www.hybrid-analysis.com/search?query="),
]


@dataclass
class ReputationReport:
    domain: str
    checked: int
    listed_on: List[str] = field(default_factory=list)
    check_urls: List[BlacklistService] = field(default_factory=list)


def blacklist_check_urls(domain: str) -> List[BlacklistService]:
    """Manual-verification URL for `domain` on every known service."""
    encoded = quote(domain, safe="")
    return [BlacklistService(s.name, s.check_url + encoded) for s in BLACKLIST_SERVICES]


def check_reputation(domain: str, confirmed_listings: Optional[List[str]] = None) -> ReputationReport:
    return ReputationReport(
        domain=domain,
        checked=len(BLACKLIST_SERVICES),
        listed_on=list(confirmed_listings or []),
        check_urls=blacklist_check_urls(domain),
    )
